"""
Source Aggregator - one ordered, deduplicated article list from every source.

Fans out to Wikipedia, RSS and the curated external search concurrently,
waits for all of them regardless of failures, then merges by URL and image
fingerprint and orders by source priority and recency.
"""

import asyncio
import re
import time
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import urlparse

import httpx
import structlog

from article_feed.config import Settings
from article_feed.core.taxonomy import ArticleCategory
from article_feed.models.domain import (
    Article,
    SourceFetchResult,
    SourcesStatus,
    source_priority,
)
from article_feed.services.data_ingestion.base import BaseArticleSource
from article_feed.services.data_ingestion.cache import CacheStore, create_cache_store
from article_feed.services.data_ingestion.external import ExternalSource
from article_feed.services.data_ingestion.rate_limiter import RateLimiter
from article_feed.services.data_ingestion.rss import RSSSource
from article_feed.services.data_ingestion.wikipedia import WikipediaSource

logger = structlog.get_logger(__name__)

_SIZE_TOKEN_RE = re.compile(r"[-_]?\d+x\d+")
_SIZE_WORD_RE = re.compile(r"[-_]?(thumbnail|thumb|small|medium|large)", re.I)
_WIDTH_RE = re.compile(r"[-_]?w\d+")
_HEIGHT_RE = re.compile(r"[-_]?h\d+")
_CDN_HOST_RE = re.compile(r"^(www|cdn|images|img|media|static)\d*\.", re.I)
_TITLE_STRIP_RE = re.compile(r"[^a-z0-9\s]")


def normalize_url(url: str) -> str:
    """Host without www. plus path without trailing slash; scheme and query dropped."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url.lower()
    if not parsed.netloc:
        return url.lower()

    host = (parsed.hostname or "").lower().removeprefix("www.")
    return f"{host}{parsed.path}".lower().removesuffix("/")


def normalize_image_url(url: Optional[str]) -> Optional[str]:
    """
    Fingerprint an image URL so resized variants of one picture collide.

    Drops size tokens (400x300, w400, h300, thumbnail/small/large) from the
    path and CDN-style prefixes (cdn., img2., static.) from the host.
    """
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return url.lower()
    if not parsed.netloc:
        return url.lower()

    path = parsed.path.lower()
    path = _SIZE_TOKEN_RE.sub("", path)
    path = _SIZE_WORD_RE.sub("", path)
    path = _WIDTH_RE.sub("", path)
    path = _HEIGHT_RE.sub("", path)

    host = _CDN_HOST_RE.sub("", (parsed.hostname or "").lower())
    return f"{host}{path}"


def _normalize_title(title: str) -> str:
    return _TITLE_STRIP_RE.sub("", title.lower())


def title_similarity(a: str, b: str) -> float:
    """
    1.0 for identical titles, 0.9 when one contains the other, otherwise the
    Jaccard index over words longer than two characters.
    """
    na = _normalize_title(a)
    nb = _normalize_title(b)

    if na == nb:
        return 1.0
    if na and nb and (na in nb or nb in na):
        return 0.9

    words_a = {w for w in na.split() if len(w) > 2}
    words_b = {w for w in nb.split() if len(w) > 2}
    if not words_a or not words_b:
        return 0.0

    return len(words_a & words_b) / len(words_a | words_b)


def deduplicate_articles(
    articles: Iterable[Article],
    ignored_images: Iterable[str] = (),
) -> list[Article]:
    """
    Collapse duplicates by normalized URL, then by image fingerprint.

    Records without a URL are dropped. On a URL match the longer extract
    wins regardless of source. On an image match the lower priority number
    wins, ties going to the longer extract. Output keeps first-seen order.
    """
    ignored = {key for key in (normalize_image_url(u) for u in ignored_images) if key}
    by_url: dict[str, Article] = {}
    by_image: dict[str, Article] = {}

    def image_key(article: Article) -> Optional[str]:
        key = normalize_image_url(article.image or article.thumbnail)
        return None if key in ignored else key

    for article in articles:
        if not article.url:
            continue

        url_key = normalize_url(article.url)

        if url_key in by_url:
            existing = by_url[url_key]
            if len(article.extract) > len(existing.extract):
                by_url[url_key] = article
                old_image = image_key(existing)
                if old_image and by_image.get(old_image) is existing:
                    del by_image[old_image]
                new_image = image_key(article)
                if new_image and new_image not in by_image:
                    by_image[new_image] = article
            continue

        img_key = image_key(article)
        if img_key and img_key in by_image:
            existing = by_image[img_key]
            existing_priority = source_priority(existing.source)
            article_priority = source_priority(article.source)
            if article_priority < existing_priority or (
                article_priority == existing_priority
                and len(article.extract) > len(existing.extract)
            ):
                by_url.pop(normalize_url(existing.url), None)
                by_url[url_key] = article
                by_image[img_key] = article
            continue

        by_url[url_key] = article
        if img_key:
            by_image[img_key] = article

    return list(by_url.values())


def collapse_similar_titles(articles: list[Article], threshold: float) -> list[Article]:
    """Within one source, merge records whose titles reach `threshold`; longer extract wins."""
    kept: list[Article] = []

    for article in articles:
        for i, existing in enumerate(kept):
            if existing.source != article.source:
                continue
            if title_similarity(article.title, existing.title) >= threshold:
                if len(article.extract) > len(existing.extract):
                    kept[i] = article
                break
        else:
            kept.append(article)

    return kept


def sort_by_priority(articles: list[Article]) -> list[Article]:
    """Priority ascending, then newest first (published_at, else fetched_at)."""
    return sorted(
        articles,
        key=lambda a: (source_priority(a.source), -a.recency.timestamp()),
    )


def filter_by_category(articles: list[Article], category: ArticleCategory) -> list[Article]:
    return [a for a in articles if a.category == category]


def get_article_by_id(articles: list[Article], article_id: str) -> Optional[Article]:
    for article in articles:
        if article.id == article_id:
            return article
    return None


class SourceAggregator:
    """
    Aggregates articles from the three sources.

    Features:
    - Concurrent fetching with an all-settled barrier
    - URL and image-fingerprint deduplication
    - Priority-based ordering (curated search, then RSS, then Wikipedia)
    """

    def __init__(
        self,
        wikipedia: BaseArticleSource,
        rss: BaseArticleSource,
        external: BaseArticleSource,
        title_similarity_threshold: Optional[float] = None,
        ignored_images: Iterable[str] = (),
    ):
        self.wikipedia = wikipedia
        self.rss = rss
        self.external = external
        self.title_similarity_threshold = title_similarity_threshold
        self.ignored_images = tuple(ignored_images)
        self.last_results: list[SourceFetchResult] = []

    @property
    def sources(self) -> dict[str, BaseArticleSource]:
        return {
            "wikipedia": self.wikipedia,
            "rss": self.rss,
            "external": self.external,
        }

    async def fetch_all_articles(self) -> list[Article]:
        """
        Fetch from every enabled source concurrently.

        A source that raises or is disabled contributes zero records; this
        method itself never raises.
        """
        logger.info("Fetching from all sources")
        start = time.monotonic()

        labels = list(self.sources)
        results = await asyncio.gather(
            *(self._fetch_from_source(source) for source in self.sources.values()),
            return_exceptions=True,
        )

        source_results = [
            self._to_source_result(label, result)
            for label, result in zip(labels, results)
        ]
        self.last_results = source_results

        for r in source_results:
            if r.success:
                logger.info("Source fetched", source=r.source, count=len(r.articles))
            else:
                logger.warning("Source failed", source=r.source, error=r.error)

        all_articles = [a for r in source_results if r.success for a in r.articles]

        deduped = self._deduplicate(all_articles)
        ordered = sort_by_priority(deduped)

        logger.info(
            "Aggregated articles",
            fetched=len(all_articles),
            unique=len(ordered),
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return ordered

    async def fetch_wikipedia_only(self) -> list[Article]:
        return await self.wikipedia.fetch_articles()

    async def refresh_all_articles(self) -> list[Article]:
        """Drop every cache, then fetch everything live."""
        await self.clear_all_caches()
        return await self.fetch_all_articles()

    async def clear_all_caches(self) -> None:
        """Clear every source cache; one failing clear does not stop the others."""
        logger.info("Clearing all caches")
        labels = list(self.sources)
        results = await asyncio.gather(
            *(source.clear_cache() for source in self.sources.values()),
            return_exceptions=True,
        )
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                logger.warning("Cache clear failed", source=label, error=str(result))
        logger.info("All caches cleared")

    def get_sources_status(self) -> SourcesStatus:
        return SourcesStatus(
            wikipedia=True,
            rss=self.rss.is_enabled(),
            external=self.external.is_enabled(),
        )

    def get_source_stats(self) -> dict:
        """Configuration snapshot for each source."""
        return {
            "total_sources": len(self.sources),
            "sources": [
                {
                    "name": label,
                    "enabled": True if label == "wikipedia" else source.is_enabled(),
                    "priority": source_priority(source.source_type),
                    "cache_ttl_hours": source.cache_ttl.total_seconds() / 3600,
                }
                for label, source in self.sources.items()
            ],
            "last_fetch": [
                {"source": r.source, "success": r.success, "count": len(r.articles), "error": r.error}
                for r in self.last_results
            ],
        }

    async def _fetch_from_source(self, source: BaseArticleSource) -> list[Article]:
        if not source.is_enabled():
            return []
        return await source.fetch_articles()

    def _to_source_result(self, label: str, result) -> SourceFetchResult:
        now = datetime.now(timezone.utc)
        if isinstance(result, BaseException):
            return SourceFetchResult(
                source=label,
                success=False,
                error=str(result) or type(result).__name__,
                fetched_at=now,
            )
        return SourceFetchResult(source=label, articles=result, success=True, fetched_at=now)

    def _deduplicate(self, articles: list[Article]) -> list[Article]:
        unique = deduplicate_articles(articles, self.ignored_images)
        if self.title_similarity_threshold:
            unique = collapse_similar_titles(unique, self.title_similarity_threshold)
        return unique


def build_aggregator(
    settings: Settings,
    cache: Optional[CacheStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SourceAggregator:
    """Composition root: one store and one rate limiter shared by all sources."""
    store = cache if cache is not None else create_cache_store(
        settings.cache_backend, settings.cache_dir
    )
    limiter = RateLimiter()

    def make(cls: type[BaseArticleSource]) -> BaseArticleSource:
        return cls(settings, cache=store, transport=transport, rate_limiter=limiter)

    return SourceAggregator(
        wikipedia=make(WikipediaSource),
        rss=make(RSSSource),
        external=make(ExternalSource),
        title_similarity_threshold=settings.articles.title_similarity_threshold,
        ignored_images=[settings.articles.fallback_image],
    )
