"""
Data ingestion for Article Feed.

This module provides the article sources and the pieces they share:
- Wikipedia (MediaWiki query API)
- RSS feeds through the Jina Reader proxy
- Curated external sites through Exa search, with Jina search as fallback
- Persisted per-source caches and rate limiting
- Cross-source deduplication and ordering
"""

from article_feed.services.data_ingestion.base import BaseArticleSource
from article_feed.services.data_ingestion.cache import (
    CacheEntry,
    CacheStore,
    FileCacheStore,
    MemoryCacheStore,
)
from article_feed.services.data_ingestion.rate_limiter import RateLimiter
from article_feed.services.data_ingestion.wikipedia import WikipediaSource
from article_feed.services.data_ingestion.rss import RSSSource
from article_feed.services.data_ingestion.external import ExternalSource
from article_feed.services.data_ingestion.aggregator import (
    SourceAggregator,
    build_aggregator,
)

__all__ = [
    "BaseArticleSource",
    "CacheEntry",
    "CacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "RateLimiter",
    "WikipediaSource",
    "RSSSource",
    "ExternalSource",
    "SourceAggregator",
    "build_aggregator",
]
