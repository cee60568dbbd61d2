"""Domain models."""

from article_feed.models.domain import (
    SOURCE_PRIORITY,
    Article,
    ArticleSourceType,
    SourceFetchResult,
    SourcesStatus,
    source_priority,
)

__all__ = [
    "SOURCE_PRIORITY",
    "Article",
    "ArticleSourceType",
    "SourceFetchResult",
    "SourcesStatus",
    "source_priority",
]
