"""
Shared test helpers.

No test touches the network: upstream HTTP goes through httpx.MockTransport
and caches live in a MemoryCacheStore.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from article_feed.config import ArticleSettings, Settings
from article_feed.core.taxonomy import ArticleCategory
from article_feed.models.domain import Article, ArticleSourceType

FETCHED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_article(
    id: str,
    source: ArticleSourceType = ArticleSourceType.RSS,
    url: Optional[str] = None,
    title: Optional[str] = None,
    extract: str = "",
    image: Optional[str] = None,
    category: ArticleCategory = ArticleCategory.GEMSTONES,
    published_at: Optional[datetime] = None,
    fetched_at: datetime = FETCHED_AT,
) -> Article:
    return Article(
        id=id,
        title=title or f"Article {id}",
        category=category,
        image=image,
        thumbnail=image,
        summary="",
        extract=extract,
        url=f"https://example.com/{id}" if url is None else url,
        source=source,
        source_name=source.value,
        published_at=published_at,
        fetched_at=fetched_at,
    )


def make_settings(**overrides) -> Settings:
    """Settings with a memory cache and no keys unless given."""
    article_overrides = overrides.pop("articles", {})
    values = {
        "cache_backend": "memory",
        "jina_api_key": None,
        "exa_api_key": None,
    }
    values.update(overrides)
    return Settings(articles=ArticleSettings(**article_overrides), **values)


def fake_source(
    articles: Optional[list[Article]] = None,
    enabled: bool = True,
    error: Optional[Exception] = None,
    source_type: ArticleSourceType = ArticleSourceType.RSS,
) -> MagicMock:
    """Stand-in adapter with the public surface the aggregator uses."""
    source = MagicMock()
    source.is_enabled.return_value = enabled
    source.fetch_articles = AsyncMock(return_value=articles or [], side_effect=error)
    source.clear_cache = AsyncMock(return_value=None)
    source.source_type = source_type
    source.cache_ttl = timedelta(hours=24)
    return source


@pytest.fixture
def settings() -> Settings:
    return make_settings()
