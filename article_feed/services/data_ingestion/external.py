"""
External source - articles from curated jewelry education sites.

Exa semantic search is the primary provider: one query restricted to the
curated domains. When Exa has no key, fails, or finds nothing, Jina search
runs one query per curated domain, bounded to the first few domains to stay
inside Jina's rate limits. Both paths drop shop and index pages.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx

from article_feed.config import CuratedSourceConfig, enabled_curated_sources
from article_feed.core.taxonomy import ArticleCategory
from article_feed.models.domain import Article, ArticleSourceType
from article_feed.services.data_ingestion.base import BaseArticleSource
from article_feed.services.data_ingestion.text import (
    as_text,
    cap_length,
    clean_text,
    extract_domain,
    extract_summary,
    make_article_id,
    parse_date,
    quality_rejection,
    sanitize_for_id,
)

DEFAULT_EXTERNAL_CATEGORY = ArticleCategory.STYLES
EXA_TEXT_MAX_CHARACTERS = 1000


def match_curated_source(
    url: str,
    sources: list[CuratedSourceConfig],
) -> Optional[CuratedSourceConfig]:
    """Find the curated source whose domain appears in the hit's hostname."""
    domain = extract_domain(url).lower()
    for source in sources:
        needle = source.domain.split("/")[0].lower().removeprefix("www.")
        if needle and needle in domain:
            return source
    return None


class ExternalSource(BaseArticleSource):
    """Curated-site search through Exa (primary) and Jina (fallback)."""

    cache_key = "external_articles_cache"
    cache_version = 1
    source_type = ArticleSourceType.EXA
    name = "external"

    def is_enabled(self) -> bool:
        return self.disabled_reason() is None

    def disabled_reason(self) -> Optional[str]:
        if not enabled_curated_sources(self.settings):
            return "no_sources_enabled"
        if not self.settings.exa_api_key and not self.settings.jina_api_key:
            return "no_api_keys"
        return None

    @property
    def cache_ttl(self) -> timedelta:
        return self.settings.articles.cache_ttl_external

    @property
    def timeout_seconds(self) -> float:
        return self.settings.external_timeout_seconds

    async def _fetch_live(self) -> list[Article]:
        sources = enabled_curated_sources(self.settings)
        articles: list[Article] = []

        async with self._client() as client:
            if self.settings.exa_api_key:
                self.log.info("Fetching via Exa", domains=[s.domain for s in sources])
                articles = await self._fetch_via_exa(client, sources)

            if not articles and self.settings.jina_api_key:
                self.log.info("Falling back to Jina search")
                articles = await self._fetch_via_jina(client, sources)

        return articles

    # ------------------------------------------------------------------
    # Exa
    # ------------------------------------------------------------------

    async def _fetch_via_exa(
        self,
        client: httpx.AsyncClient,
        sources: list[CuratedSourceConfig],
    ) -> list[Article]:
        """One domain-restricted semantic search. Failures yield []."""
        articles_settings = self.settings.articles
        payload = {
            "query": articles_settings.exa_query,
            "numResults": articles_settings.exa_max_results,
            "type": "auto",
            "useAutoprompt": True,
            "contents": {"text": {"maxCharacters": EXA_TEXT_MAX_CHARACTERS}},
            "includeDomains": [s.domain for s in sources],
        }
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.settings.exa_api_key or "",
        }

        try:
            await self._acquire("exa")
            data = await self._request_json(
                client, "POST", self.settings.exa_api_url, json=payload, headers=headers
            )
        except Exception as e:
            self.log.warning("Exa fetch failed", error=str(e), error_type=type(e).__name__)
            return []

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            self.log.warning("Exa response missing results")
            return []

        self.log.info("Exa returned results", count=len(results))
        return self.parse_exa_results(results, sources)

    def parse_exa_results(
        self,
        results: list[Any],
        sources: list[CuratedSourceConfig],
    ) -> list[Article]:
        now = datetime.now(timezone.utc)
        max_chars = self.settings.articles.extract_max_chars
        articles = []

        for result in results:
            if not isinstance(result, dict):
                continue
            url = as_text(result.get("url"))
            title = as_text(result.get("title"))
            if not url or not title:
                continue

            text = as_text(result.get("text")) or _first_highlight(result)
            reason = quality_rejection(title, text)
            if reason:
                self.log.debug("Filtered result", reason=reason, title=title)
                continue

            source = match_curated_source(url, sources)
            image = as_text(result.get("image")) or None

            articles.append(Article(
                id=make_article_id("exa", url),
                title=clean_text(title),
                category=source.category if source else DEFAULT_EXTERNAL_CATEGORY,
                image=image,
                thumbnail=image,
                summary=extract_summary(clean_text(text)),
                extract=cap_length(clean_text(as_text(result.get("text"))), max_chars),
                url=url,
                source=ArticleSourceType.EXA,
                source_name=source.name if source else extract_domain(url),
                published_at=parse_date(result.get("publishedDate")),
                fetched_at=now,
                author=as_text(result.get("author")) or None,
            ))

        return articles

    # ------------------------------------------------------------------
    # Jina
    # ------------------------------------------------------------------

    async def _fetch_via_jina(
        self,
        client: httpx.AsyncClient,
        sources: list[CuratedSourceConfig],
    ) -> list[Article]:
        """One search per curated domain; a failing domain is skipped."""
        articles: list[Article] = []
        headers = {
            "Accept": "application/json",
            "X-Return-Format": "json",
            "Authorization": f"Bearer {self.settings.jina_api_key}",
        }

        for source in sources[: self.settings.articles.jina_max_domains]:
            query = source.search_query or f"{source.domain} jewelry"
            url = f"{self.settings.jina_search_url}{quote(query)}"
            try:
                await self._acquire("jina_search")
                data = await self._request_json(client, "GET", url, headers=headers)
            except Exception as e:
                self.log.warning("Jina fetch failed", curated_source=source.name, error=str(e))
                continue

            results = data.get("data") if isinstance(data, dict) else None
            if isinstance(results, list):
                articles.extend(self.parse_jina_results(results, source))

        return articles

    def parse_jina_results(
        self,
        results: list[Any],
        source: CuratedSourceConfig,
    ) -> list[Article]:
        now = datetime.now(timezone.utc)
        max_chars = self.settings.articles.extract_max_chars
        limit = self.settings.articles.jina_results_per_domain
        id_prefix = f"jina_{sanitize_for_id(source.name)}"
        articles = []

        for index, result in enumerate(results):
            if len(articles) >= limit:
                break
            if not isinstance(result, dict):
                continue

            title = as_text(result.get("title"))
            body = as_text(result.get("content")) or as_text(result.get("description"))
            blurb = as_text(result.get("description")) or as_text(result.get("content"))

            reason = quality_rejection(title, body)
            if reason:
                self.log.debug("Filtered result", reason=reason, title=title)
                continue

            url = as_text(result.get("url"))
            image = as_text(result.get("image")) or None

            articles.append(Article(
                id=make_article_id(id_prefix, url or f"{index}:{title}"),
                title=clean_text(title) or "Untitled",
                category=source.category,
                image=image,
                thumbnail=as_text(result.get("thumbnail")) or image,
                summary=extract_summary(clean_text(blurb)),
                extract=cap_length(clean_text(body), max_chars),
                url=url,
                source=ArticleSourceType.JINA,
                source_name=source.name,
                published_at=parse_date(result.get("publishedTime") or result.get("date")),
                fetched_at=now,
            ))

        return articles


def _first_highlight(result: dict) -> str:
    highlight = result.get("highlight")
    if isinstance(highlight, str):
        return highlight.strip()
    highlights = result.get("highlights")
    if isinstance(highlights, list) and highlights and isinstance(highlights[0], str):
        return highlights[0].strip()
    return ""
