"""
Wikipedia source - the encyclopedic baseline.

Fetches intro extracts and lead images for a fixed list of page titles in a
single MediaWiki query. Always enabled; content is structured so it skips the
sales/landing filters applied to reader and search output.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

from article_feed.core.taxonomy import category_for_topic
from article_feed.errors import SourceFetchError
from article_feed.models.domain import Article, ArticleSourceType
from article_feed.services.data_ingestion.base import BaseArticleSource
from article_feed.services.data_ingestion.text import (
    clean_extract,
    clean_title,
    extract_summary,
)


class WikipediaSource(BaseArticleSource):
    """MediaWiki query API source."""

    cache_key = "wikipedia_articles_cache"
    cache_version = 1
    source_type = ArticleSourceType.WIKIPEDIA
    name = "wikipedia"
    display_name = "Wikipedia"

    def is_enabled(self) -> bool:
        return True

    @property
    def cache_ttl(self) -> timedelta:
        return self.settings.articles.cache_ttl_wikipedia

    @property
    def timeout_seconds(self) -> float:
        return self.settings.wikipedia_timeout_seconds

    def _build_params(self) -> dict[str, str]:
        articles = self.settings.articles
        titles = articles.topics[: articles.max_articles]
        return {
            "action": "query",
            "titles": "|".join(titles),
            "prop": "extracts|pageimages|info",
            "exintro": "1",
            "explaintext": "1",
            "piprop": "thumbnail|original",
            "pithumbsize": "400",
            "inprop": "url",
            "format": "json",
        }

    async def _fetch_live(self) -> list[Article]:
        if not self.settings.articles.topics:
            self.log.warning("No Wikipedia topics configured")
            return []

        async with self._client() as client:
            await self._acquire("wikipedia")
            data = await self._request_json(
                client,
                "GET",
                self.settings.wikipedia_api_url,
                params=self._build_params(),
                headers={"Accept": "application/json"},
            )

        if not isinstance(data, dict):
            raise SourceFetchError(self.name, "Unexpected response shape")

        pages = (data.get("query") or {}).get("pages")
        if not isinstance(pages, dict) or not pages:
            self.log.warning("No pages in Wikipedia response")
            return []

        return self._parse_pages(pages)

    def _parse_pages(self, pages: dict[str, Any]) -> list[Article]:
        """Turn the `query.pages` map into records sorted by title."""
        now = datetime.now(timezone.utc)
        articles = []

        for page in pages.values():
            article = self._parse_page(page, now)
            if article:
                articles.append(article)

        articles.sort(key=lambda a: a.title.lower())
        return articles

    def _parse_page(self, page: Any, now: datetime) -> Optional[Article]:
        if not isinstance(page, dict):
            return None
        if "missing" in page or not page.get("pageid") or not page.get("title"):
            return None

        settings = self.settings.articles
        title = page["title"]
        raw_extract = page.get("extract") or ""

        thumbnail = (page.get("thumbnail") or {}).get("source")
        original = (page.get("original") or {}).get("source")
        image = original or thumbnail or settings.fallback_image

        url = page.get("fullurl") or (
            f"https://en.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}"
        )

        return Article(
            id=f"wiki_{page['pageid']}",
            title=clean_title(title),
            category=category_for_topic(title, settings.category_mapping),
            image=image,
            thumbnail=thumbnail or settings.fallback_image,
            summary=extract_summary(raw_extract),
            extract=clean_extract(raw_extract, settings.extract_max_words),
            url=url,
            source=ArticleSourceType.WIKIPEDIA,
            source_name=self.display_name,
            fetched_at=now,
        )

    async def _on_fetch_error(self, error: Exception) -> list[Article]:
        """Serve the last cached batch of the current version, even if expired."""
        entry, _ = await self._read_entry()
        if entry is not None and entry.version == self.cache_version and entry.articles:
            self.log.info("Returning stale cache as fallback", count=len(entry.articles))
            return entry.articles
        return []
