"""
Base class for article sources.

A source wraps one upstream, normalizes what it returns into `Article`
records and keeps its own persisted cache. `fetch_articles()` never raises:
any failure is logged and becomes an empty list.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from article_feed.config import Settings
from article_feed.errors import SourceFetchError
from article_feed.models.domain import Article, ArticleSourceType
from article_feed.services.data_ingestion.cache import (
    CacheEntry,
    CacheStore,
    CacheValidation,
    InvalidReason,
    MemoryCacheStore,
    parse_cache_entry,
    validate_cache,
)
from article_feed.services.data_ingestion.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

USER_AGENT = "ArticleFeed/0.1 (jewelry education reader)"

# Retry only connection-level failures; status errors are final
transient_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class BaseArticleSource(ABC):
    """
    Abstract base class for article sources.

    Subclasses set `cache_key`, `cache_version`, `source_type` and `name`,
    and implement `is_enabled()`, `cache_ttl` and `_fetch_live()`.
    """

    cache_key: str
    cache_version: int = 1
    source_type: ArticleSourceType
    name: str

    def __init__(
        self,
        settings: Settings,
        cache: Optional[CacheStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings
        self.cache = cache if cache is not None else MemoryCacheStore()
        self.rate_limiter = rate_limiter or RateLimiter()
        self._transport = transport
        self.log = logger.bind(source=self.name)

    @abstractmethod
    def is_enabled(self) -> bool:
        """Credentials and at least one sub-source are configured. No I/O."""

    @property
    @abstractmethod
    def cache_ttl(self) -> timedelta:
        pass

    @property
    @abstractmethod
    def timeout_seconds(self) -> float:
        pass

    @abstractmethod
    async def _fetch_live(self) -> list[Article]:
        """
        Fetch, filter and normalize from the upstream.

        May raise; `fetch_articles()` is the catch-all boundary.
        """

    async def fetch_articles(self) -> list[Article]:
        """Cached records when fresh, otherwise a live fetch. Never raises."""
        if not self.is_enabled():
            return []

        try:
            cached = await self._get_cached_articles()
            if cached is not None:
                self.log.info("Using cached articles", count=len(cached))
                return cached

            articles = await self._fetch_live()
            self.log.info("Fetched articles", count=len(articles))

            if articles:
                await self._save_to_cache(articles)
            return articles

        except Exception as e:
            self.log.error("Fetch failed", error=str(e), error_type=type(e).__name__)
            return await self._on_fetch_error(e)

    async def force_refresh(self) -> list[Article]:
        """Skip the cache read and refetch. Errors propagate."""
        self.log.info("Force refreshing articles")
        articles = await self._fetch_live()
        if articles:
            await self._save_to_cache(articles)
        return articles

    async def is_cache_stale(self) -> bool:
        entry, _ = await self._read_entry()
        return not self._validate_entry(entry).is_valid

    async def clear_cache(self) -> None:
        """Delete the persisted entry. Store failures propagate."""
        await self.cache.remove_item(self.cache_key)
        self.log.info("Cache cleared")

    async def _on_fetch_error(self, error: Exception) -> list[Article]:
        """Hook for sources with a fallback; default is an empty list."""
        return []

    async def _read_entry(self) -> tuple[Optional[CacheEntry], Optional[str]]:
        try:
            raw = await self.cache.get_item(self.cache_key)
        except Exception as e:
            self.log.warning("Failed to read cache", error=str(e))
            return None, "corrupted"
        entry, reason = parse_cache_entry(raw)
        return entry, reason.value if reason else None

    async def _get_cached_articles(self) -> Optional[list[Article]]:
        entry, parse_reason = await self._read_entry()
        if entry is None:
            self.log.info("Cache invalid", reason=parse_reason)
            return None

        validation = self._validate_entry(entry)
        if not validation.is_valid:
            self.log.info("Cache invalid", reason=validation.reason.value)
            return None

        return entry.articles

    def _validate_entry(self, entry: Optional[CacheEntry]) -> CacheValidation:
        """`validate_cache`, with any failure while checking counted as corruption."""
        try:
            return validate_cache(entry, self.cache_version)
        except Exception as e:
            self.log.warning("Cache entry failed validation", error=str(e))
            return CacheValidation(is_valid=False, reason=InvalidReason.CORRUPTED)

    async def _save_to_cache(self, articles: list[Article]) -> None:
        now = datetime.now(timezone.utc)
        entry = CacheEntry(
            articles=articles,
            last_fetched_at=now,
            expires_at=now + self.cache_ttl,
            version=self.cache_version,
        )
        try:
            await self.cache.set_item(self.cache_key, entry.to_json())
            self.log.info("Saved to cache", count=len(articles))
        except Exception as e:
            self.log.warning("Failed to save cache", error=str(e))

    async def _acquire(self, upstream: str) -> None:
        """Take a rate-limit slot; raises SourceFetchError when none opens in time."""
        if not await self.rate_limiter.acquire(upstream):
            raise SourceFetchError(self.name, f"Rate limited by {upstream}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            follow_redirects=True,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )

    @transient_retry
    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        return await client.request(method, url, **kwargs)

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request; raises SourceFetchError on a timeout or a non-2xx status."""
        try:
            response = await self._send(client, method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise SourceFetchError(self.name, f"Timed out requesting {url}") from e
        if response.status_code >= 400:
            raise SourceFetchError(self.name, f"HTTP {response.status_code} from {url}")
        return response

    async def _request_json(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """`_request` plus JSON decoding; undecodable bodies raise SourceFetchError."""
        response = await self._request(client, method, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(self.name, f"Malformed JSON from {url}") from e

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} source='{self.name}'>"
