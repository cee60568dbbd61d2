"""
Domain models for the article pipeline.
These are the core entities, independent of storage/API representation.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from article_feed.core.taxonomy import ArticleCategory


# =============================================================================
# Enums
# =============================================================================

class ArticleSourceType(str, Enum):
    """Where a record came from."""
    WIKIPEDIA = "wikipedia"
    RSS = "rss"
    EXA = "exa"
    JINA = "jina"


# Lower number = shown first, and wins image-based duplicate conflicts
SOURCE_PRIORITY: dict[ArticleSourceType, int] = {
    ArticleSourceType.EXA: 1,
    ArticleSourceType.JINA: 1,
    ArticleSourceType.RSS: 2,
    ArticleSourceType.WIKIPEDIA: 3,
}

UNKNOWN_PRIORITY = 99


def source_priority(source: ArticleSourceType) -> int:
    return SOURCE_PRIORITY.get(source, UNKNOWN_PRIORITY)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Article
# =============================================================================

class Article(BaseModel):
    """Unified, source-agnostic article record."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    category: ArticleCategory
    image: Optional[str] = None
    thumbnail: Optional[str] = None
    summary: str = ""
    extract: str = ""
    url: str = ""
    source: ArticleSourceType
    source_name: str
    published_at: Optional[datetime] = None
    fetched_at: datetime
    author: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("published_at", "fetched_at")
    @classmethod
    def timestamps_as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def priority(self) -> int:
        return source_priority(self.source)

    @property
    def recency(self) -> datetime:
        """Timestamp used for ordering within one priority band."""
        return self.published_at or self.fetched_at


class SourceFetchResult(BaseModel):
    """Outcome of one adapter call during aggregation."""
    source: str
    articles: list[Article] = Field(default_factory=list)
    success: bool
    error: Optional[str] = None
    fetched_at: datetime

    def __str__(self) -> str:
        status = f"{len(self.articles)} articles" if self.success else f"FAILED - {self.error}"
        return f"{self.source}: {status}"


class SourcesStatus(BaseModel):
    """Which sources are configured to run."""
    wikipedia: bool
    rss: bool
    external: bool
