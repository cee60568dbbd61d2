"""
Tests for the source aggregator: fan-out, deduplication and ordering.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from article_feed.core.taxonomy import ArticleCategory
from article_feed.errors import CacheError
from article_feed.models.domain import ArticleSourceType
from article_feed.services.data_ingestion.aggregator import (
    SourceAggregator,
    build_aggregator,
    deduplicate_articles,
    filter_by_category,
    get_article_by_id,
    normalize_image_url,
    normalize_url,
    sort_by_priority,
    title_similarity,
)
from article_feed.services.data_ingestion.cache import MemoryCacheStore

from conftest import FETCHED_AT, fake_source, make_article, make_settings

WIKI = ArticleSourceType.WIKIPEDIA
RSS = ArticleSourceType.RSS
EXA = ArticleSourceType.EXA
JINA = ArticleSourceType.JINA


def make_aggregator(wikipedia=None, rss=None, external=None, **kwargs) -> SourceAggregator:
    return SourceAggregator(
        wikipedia=wikipedia or fake_source(source_type=WIKI),
        rss=rss or fake_source(source_type=RSS),
        external=external or fake_source(source_type=EXA),
        **kwargs,
    )


class TestNormalization:
    """Tests for URL and image fingerprinting."""

    def test_url_normalization(self):
        """Scheme, www., trailing slash and query do not matter."""
        base = normalize_url("https://example.com/emerald-guide")
        assert normalize_url("http://www.example.com/emerald-guide/") == base
        assert normalize_url("https://EXAMPLE.com/emerald-guide?utm_source=feed") == base
        assert normalize_url("https://example.com/other") != base

    def test_url_normalization_unparseable(self):
        assert normalize_url("Not A URL") == "not a url"

    def test_image_size_variants_collide(self):
        small = normalize_image_url("https://cdn.example.com/img/ring-400x300.jpg")
        large = normalize_image_url("https://example.com/img/ring-800x600.jpg")
        assert small == large == "example.com/img/ring.jpg"

    def test_image_size_words_collide(self):
        thumb = normalize_image_url("https://images.example.com/ring_thumbnail.jpg")
        plain = normalize_image_url("https://example.com/ring.jpg")
        assert thumb == plain

    def test_image_missing(self):
        assert normalize_image_url(None) is None
        assert normalize_image_url("") is None


class TestDeduplication:
    """Tests for cross-source deduplication."""

    def test_same_url_keeps_longer_extract(self):
        rss = make_article(
            "rss1", RSS, url="https://www.example.com/emerald-guide/",
            extract="Emeralds are beryl coloured green by chromium and vanadium.",
        )
        exa = make_article("exa1", EXA, url="http://example.com/emerald-guide", extract="Short.")

        result = deduplicate_articles([rss, exa])
        assert [a.id for a in result] == ["rss1"]

        result = deduplicate_articles([exa, rss])
        assert [a.id for a in result] == ["rss1"]

    def test_same_image_keeps_higher_priority(self):
        wiki = make_article(
            "wiki1", WIKI, url="https://en.wikipedia.org/wiki/Ruby",
            image="https://cdn.example.com/photo-400x300.jpg",
            extract="A much longer encyclopedic extract about rubies.",
        )
        rss = make_article(
            "rss1", RSS, url="https://gems.example/ruby",
            image="https://example.com/photo-800x600.jpg",
        )

        assert [a.id for a in deduplicate_articles([wiki, rss])] == ["rss1"]
        assert [a.id for a in deduplicate_articles([rss, wiki])] == ["rss1"]

    def test_same_image_same_priority_keeps_longer_extract(self):
        a = make_article("rss1", RSS, url="https://a.example/x", image="https://img.example/p.jpg")
        b = make_article(
            "rss2", RSS, url="https://b.example/y", image="https://img.example/p.jpg",
            extract="Longer text wins.",
        )
        assert [x.id for x in deduplicate_articles([a, b])] == ["rss2"]

    def test_missing_url_is_dropped(self):
        articles = [make_article("rss1", url=""), make_article("rss2")]
        assert [a.id for a in deduplicate_articles(articles)] == ["rss2"]

    def test_ignored_image_does_not_merge(self):
        fallback = "https://images.example.com/fallback.jpg"
        a = make_article("wiki1", WIKI, image=fallback)
        b = make_article("wiki2", WIKI, image=fallback)
        assert len(deduplicate_articles([a, b])) == 1
        assert len(deduplicate_articles([a, b], ignored_images=[fallback])) == 2

    def test_distinct_articles_untouched(self):
        articles = [make_article(f"rss{i}", image=f"https://img.example/{i}a.jpg") for i in range(4)]
        assert len(deduplicate_articles(articles)) == 4


class TestOrdering:
    """Tests for priority and recency ordering."""

    def test_priority_order(self):
        wiki = make_article("wiki1", WIKI)
        rss = make_article("rss1", RSS)
        exa = make_article("exa1", EXA)
        jina = make_article("jina1", JINA)

        ordered = sort_by_priority([wiki, rss, exa, jina])
        assert [a.id for a in ordered[:2]] == ["exa1", "jina1"]
        assert [a.id for a in ordered[2:]] == ["rss1", "wiki1"]

    def test_newest_first_within_priority(self):
        older = make_article("rss_old", published_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        newer = make_article("rss_new", published_at=datetime(2024, 5, 1, tzinfo=timezone.utc))
        undated = make_article("rss_undated", fetched_at=FETCHED_AT)

        ordered = sort_by_priority([older, undated, newer])
        assert [a.id for a in ordered] == ["rss_undated", "rss_new", "rss_old"]


class TestTitleSimilarity:
    """Tests for the optional title-based pass."""

    def test_similarity_scores(self):
        assert title_similarity("Ruby", "ruby!") == 1.0
        assert title_similarity("Ruby Guide", "The Ruby Guide for Collectors") == 0.9
        assert title_similarity("Emerald cutting styles", "Emerald cutting methods") == 0.5
        assert title_similarity("Pearls", "Opals") == 0.0

    def test_disabled_by_default(self):
        a = make_article("rss1", title="Ruby Guide")
        b = make_article("rss2", title="The Ruby Guide for Collectors")
        aggregator = make_aggregator(rss=fake_source([a, b]))

        assert len(asyncio.run(aggregator.fetch_all_articles())) == 2

    def test_threshold_collapses_same_source_only(self):
        a = make_article("rss1", title="Ruby Guide")
        b = make_article("rss2", title="The Ruby Guide for Collectors", extract="More detail.")
        c = make_article("exa1", EXA, title="Ruby Guide")
        aggregator = make_aggregator(
            rss=fake_source([a, b]),
            external=fake_source([c], source_type=EXA),
            title_similarity_threshold=0.8,
        )

        result = asyncio.run(aggregator.fetch_all_articles())
        assert sorted(x.id for x in result) == ["exa1", "rss2"]


class TestAggregator:
    """Tests for the aggregator's fan-out and cache management."""

    def test_merges_all_sources(self):
        aggregator = make_aggregator(
            wikipedia=fake_source([make_article("wiki1", WIKI)], source_type=WIKI),
            rss=fake_source([make_article("rss1", RSS)]),
            external=fake_source([make_article("exa1", EXA)], source_type=EXA),
        )

        result = asyncio.run(aggregator.fetch_all_articles())
        assert [a.id for a in result] == ["exa1", "rss1", "wiki1"]
        assert all(r.success for r in aggregator.last_results)

    def test_partial_failure(self):
        """A source that raises contributes nothing; the rest still arrive."""
        aggregator = make_aggregator(
            wikipedia=fake_source([make_article("wiki1", WIKI)], source_type=WIKI),
            rss=fake_source(error=RuntimeError("feed exploded")),
            external=fake_source([make_article("exa1", EXA)], source_type=EXA),
        )

        result = asyncio.run(aggregator.fetch_all_articles())

        assert [a.id for a in result] == ["exa1", "wiki1"]
        rss_result = next(r for r in aggregator.last_results if r.source == "rss")
        assert not rss_result.success
        assert rss_result.error == "feed exploded"

    def test_all_sources_fail(self):
        aggregator = make_aggregator(
            wikipedia=fake_source(error=RuntimeError("a"), source_type=WIKI),
            rss=fake_source(error=RuntimeError("b")),
            external=fake_source(error=RuntimeError("c"), source_type=EXA),
        )
        assert asyncio.run(aggregator.fetch_all_articles()) == []

    def test_disabled_source_is_not_called(self):
        rss = fake_source([make_article("rss1")], enabled=False)
        aggregator = make_aggregator(rss=rss)

        asyncio.run(aggregator.fetch_all_articles())
        rss.fetch_articles.assert_not_awaited()

    def test_clear_all_caches_is_best_effort(self):
        wikipedia = fake_source(source_type=WIKI)
        rss = fake_source()
        rss.clear_cache.side_effect = CacheError("disk full")
        external = fake_source(source_type=EXA)
        aggregator = make_aggregator(wikipedia=wikipedia, rss=rss, external=external)

        asyncio.run(aggregator.clear_all_caches())

        wikipedia.clear_cache.assert_awaited_once()
        rss.clear_cache.assert_awaited_once()
        external.clear_cache.assert_awaited_once()

    def test_refresh_clears_then_fetches(self):
        wikipedia = fake_source([make_article("wiki1", WIKI)], source_type=WIKI)
        aggregator = make_aggregator(wikipedia=wikipedia)

        result = asyncio.run(aggregator.refresh_all_articles())

        wikipedia.clear_cache.assert_awaited_once()
        assert [a.id for a in result] == ["wiki1"]

    def test_fetch_wikipedia_only(self):
        wikipedia = fake_source([make_article("wiki1", WIKI)], source_type=WIKI)
        rss = fake_source([make_article("rss1")])
        aggregator = make_aggregator(wikipedia=wikipedia, rss=rss)

        result = asyncio.run(aggregator.fetch_wikipedia_only())

        assert [a.id for a in result] == ["wiki1"]
        rss.fetch_articles.assert_not_awaited()

    def test_sources_status(self):
        aggregator = make_aggregator(
            rss=fake_source(enabled=False),
            external=fake_source(enabled=True, source_type=EXA),
        )
        status = aggregator.get_sources_status()
        assert status.wikipedia is True
        assert status.rss is False
        assert status.external is True

    def test_source_stats(self):
        aggregator = make_aggregator(rss=fake_source(enabled=False))
        stats = aggregator.get_source_stats()

        assert stats["total_sources"] == 3
        by_name = {s["name"]: s for s in stats["sources"]}
        assert by_name["rss"]["enabled"] is False
        assert by_name["external"]["priority"] == 1
        assert by_name["wikipedia"]["priority"] == 3
        assert by_name["rss"]["cache_ttl_hours"] == 24


class TestHelpers:
    """Tests for category and id lookups."""

    def test_filter_by_category(self):
        articles = [
            make_article("a", category=ArticleCategory.GEMSTONES),
            make_article("b", category=ArticleCategory.CARE),
        ]
        assert [a.id for a in filter_by_category(articles, ArticleCategory.CARE)] == ["b"]

    def test_get_article_by_id(self):
        articles = [make_article("a"), make_article("b")]
        assert get_article_by_id(articles, "b").id == "b"
        assert get_article_by_id(articles, "zzz") is None


class TestBuildAggregator:
    """Tests for wiring the aggregator from settings."""

    def test_build_from_settings(self):
        settings = make_settings(jina_api_key="jina-key")
        aggregator = build_aggregator(settings, cache=MemoryCacheStore())

        assert aggregator.wikipedia.cache is aggregator.rss.cache is aggregator.external.cache
        assert aggregator.wikipedia.rate_limiter is aggregator.rss.rate_limiter

        status = aggregator.get_sources_status()
        assert status.wikipedia is True
        assert status.rss is False  # no feeds configured
        assert status.external is False  # no curated sources configured

    def test_fallback_image_is_ignored_for_dedup(self):
        settings = make_settings()
        aggregator = build_aggregator(settings, cache=MemoryCacheStore())
        assert settings.articles.fallback_image in aggregator.ignored_images

    def test_ttl_settings_flow_through(self):
        settings = make_settings(articles={"cache_ttl_rss": timedelta(hours=6)})
        aggregator = build_aggregator(settings, cache=MemoryCacheStore())
        assert aggregator.rss.cache_ttl == timedelta(hours=6)
