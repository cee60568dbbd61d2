"""
RSS source - jewelry industry feeds.

Each configured feed is read through the Jina Reader proxy. The proxy usually
answers with parsed JSON items; some feeds come back as the raw RSS 2.0 or
Atom document, which is parsed here. Feeds are fetched concurrently and one
feed failing never affects the others.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote
from xml.etree import ElementTree

import httpx

from article_feed.config import RSSFeedConfig, enabled_rss_feeds
from article_feed.errors import SourceFetchError
from article_feed.models.domain import Article, ArticleSourceType
from article_feed.services.data_ingestion.base import BaseArticleSource
from article_feed.services.data_ingestion.text import (
    as_text,
    cap_length,
    clean_text,
    extract_summary,
    make_article_id,
    parse_date,
    quality_rejection,
    sanitize_for_id,
)

# XML namespaces for Atom and common RSS extensions
ATOM_NS = "{http://www.w3.org/2005/Atom}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"
MEDIA_NS = "{http://search.yahoo.com/mrss/}"


class RSSSource(BaseArticleSource):
    """Configured RSS feeds read through the Jina Reader proxy."""

    cache_key = "rss_articles_cache"
    cache_version = 1
    source_type = ArticleSourceType.RSS
    name = "rss"

    def is_enabled(self) -> bool:
        return self.disabled_reason() is None

    def disabled_reason(self) -> Optional[str]:
        if not self.settings.jina_api_key:
            return "no_jina_api_key"
        if not enabled_rss_feeds(self.settings):
            return "no_feeds_enabled"
        return None

    @property
    def cache_ttl(self) -> timedelta:
        return self.settings.articles.cache_ttl_rss

    @property
    def timeout_seconds(self) -> float:
        return self.settings.rss_timeout_seconds

    async def _fetch_live(self) -> list[Article]:
        feeds = enabled_rss_feeds(self.settings)
        self.log.info("Fetching feeds", feeds=len(feeds))

        async with self._client() as client:
            results = await asyncio.gather(
                *(self._fetch_feed(client, feed) for feed in feeds),
                return_exceptions=True,
            )

        articles: list[Article] = []
        for feed, result in zip(feeds, results):
            if isinstance(result, BaseException):
                self.log.warning("Feed failed", feed=feed.name, error=str(result))
                continue
            articles.extend(result)

        return articles

    async def _fetch_feed(
        self,
        client: httpx.AsyncClient,
        feed: RSSFeedConfig,
    ) -> list[Article]:
        """Fetch and normalize a single feed."""
        reader_url = f"{self.settings.jina_reader_url}{quote(feed.url, safe='')}"
        headers = {
            "Accept": "application/json",
            "X-Return-Format": "json",
            "Authorization": f"Bearer {self.settings.jina_api_key}",
        }

        await self._acquire("jina_reader")
        response = await self._request(client, "GET", reader_url, headers=headers)

        items = self._parse_payload(response, feed.name)
        if not items:
            self.log.info("No items found in feed", feed=feed.name)
            return []

        return self._normalize_items(items, feed)

    def _parse_payload(self, response: httpx.Response, feed_name: str) -> list[dict]:
        """Pull item dicts out of either a JSON reader response or raw XML."""
        content_type = response.headers.get("content-type", "")
        body = response.text

        if "xml" in content_type or body.lstrip().startswith("<"):
            return self.parse_xml_feed(body, feed_name)

        try:
            data = response.json()
        except ValueError as e:
            raise SourceFetchError(self.name, f"Malformed reader response for {feed_name}") from e

        return self.extract_json_items(data)

    @staticmethod
    def extract_json_items(data: Any) -> list[dict]:
        """Reader output puts items under `items`, `entries` or `data.items`."""
        if not isinstance(data, dict):
            return []
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        items = data.get("items") or data.get("entries") or nested.get("items") or []
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    def _normalize_items(self, items: list[dict], feed: RSSFeedConfig) -> list[Article]:
        """Filter out shop/index pages, cap per feed, build records."""
        now = datetime.now(timezone.utc)
        limit = self.settings.articles.max_items_per_feed
        max_chars = self.settings.articles.extract_max_chars
        id_prefix = f"rss_{sanitize_for_id(feed.name)}"

        articles: list[Article] = []
        for index, item in enumerate(items):
            if len(articles) >= limit:
                break

            raw_title = as_text(item.get("title")) or "Untitled"
            body = as_text(item.get("content")) or as_text(item.get("description"))
            blurb = as_text(item.get("description")) or as_text(item.get("content"))

            reason = quality_rejection(raw_title, body)
            if reason:
                self.log.debug("Filtered item", feed=feed.name, reason=reason, title=raw_title)
                continue

            url = as_text(item.get("link")) or as_text(item.get("url"))
            image = as_text(item.get("image")) or as_text(item.get("thumbnail")) or None
            thumbnail = as_text(item.get("thumbnail")) or image

            articles.append(Article(
                id=make_article_id(id_prefix, url or f"{index}:{raw_title}"),
                title=clean_text(raw_title) or "Untitled",
                category=feed.category,
                image=image,
                thumbnail=thumbnail,
                summary=extract_summary(clean_text(blurb)),
                extract=cap_length(clean_text(body), max_chars),
                url=url,
                source=ArticleSourceType.RSS,
                source_name=feed.name,
                published_at=parse_date(item.get("published") or item.get("pubDate")),
                fetched_at=now,
                author=as_text(item.get("author")) or None,
            ))

        return articles

    # ------------------------------------------------------------------
    # Raw XML feeds
    # ------------------------------------------------------------------

    def parse_xml_feed(self, xml_content: str, feed_name: str) -> list[dict]:
        """Parse RSS 2.0 or Atom into reader-style item dicts."""
        try:
            root = ElementTree.fromstring(xml_content)
        except ElementTree.ParseError as e:
            raise SourceFetchError(self.name, f"Failed to parse XML from {feed_name}: {e}") from e

        if root.tag == f"{ATOM_NS}feed":
            return [self._atom_entry_to_item(e) for e in root.findall(f"{ATOM_NS}entry")]
        return [self._rss_item_to_item(i) for i in root.findall(".//item")]

    @staticmethod
    def _rss_item_to_item(item: ElementTree.Element) -> dict:
        image = None
        enclosure = item.find("enclosure")
        if enclosure is not None and (enclosure.get("type") or "").startswith("image"):
            image = enclosure.get("url")
        media = item.find(f"{MEDIA_NS}content")
        if image is None and media is not None:
            image = media.get("url")
        thumb = item.find(f"{MEDIA_NS}thumbnail")

        return {
            "title": (item.findtext("title") or "").strip(),
            "link": (item.findtext("link") or "").strip(),
            "description": item.findtext("description") or "",
            "content": item.findtext(f"{CONTENT_NS}encoded") or "",
            "image": image,
            "thumbnail": thumb.get("url") if thumb is not None else None,
            "pubDate": item.findtext("pubDate"),
            "author": item.findtext("author") or item.findtext(f"{DC_NS}creator"),
        }

    @staticmethod
    def _atom_entry_to_item(entry: ElementTree.Element) -> dict:
        link = None
        for link_elem in entry.findall(f"{ATOM_NS}link"):
            if link_elem.get("rel", "alternate") == "alternate":
                link = link_elem.get("href")
                break

        author = None
        author_elem = entry.find(f"{ATOM_NS}author")
        if author_elem is not None:
            author = author_elem.findtext(f"{ATOM_NS}name")

        return {
            "title": (entry.findtext(f"{ATOM_NS}title") or "").strip(),
            "link": link or "",
            "description": entry.findtext(f"{ATOM_NS}summary") or "",
            "content": entry.findtext(f"{ATOM_NS}content") or "",
            "published": entry.findtext(f"{ATOM_NS}published") or entry.findtext(f"{ATOM_NS}updated"),
            "author": author,
        }
