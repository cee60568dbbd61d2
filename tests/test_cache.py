"""
Tests for cache entries, validation and stores.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

from article_feed.services.data_ingestion.cache import (
    CacheEntry,
    FileCacheStore,
    InvalidReason,
    MemoryCacheStore,
    create_cache_store,
    parse_cache_entry,
    validate_cache,
)

from conftest import make_article

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_entry(articles=None, expires_in=timedelta(hours=1), version=1) -> CacheEntry:
    return CacheEntry(
        articles=[make_article("a1")] if articles is None else articles,
        last_fetched_at=NOW,
        expires_at=NOW + expires_in,
        version=version,
    )


class TestValidateCache:
    """Tests for cache validation reasons."""

    def test_missing_entry_is_empty(self):
        result = validate_cache(None, 1, now=NOW)
        assert not result.is_valid
        assert result.reason == InvalidReason.EMPTY

    def test_version_mismatch(self):
        result = validate_cache(make_entry(version=2), 1, now=NOW)
        assert result.reason == InvalidReason.VERSION_MISMATCH

    def test_expired(self):
        result = validate_cache(make_entry(expires_in=timedelta(seconds=-1)), 1, now=NOW)
        assert result.reason == InvalidReason.EXPIRED

    def test_empty_article_list_is_corrupted(self):
        result = validate_cache(make_entry(articles=[]), 1, now=NOW)
        assert result.reason == InvalidReason.CORRUPTED

    def test_fresh_entry_is_valid(self):
        result = validate_cache(make_entry(), 1, now=NOW)
        assert result.is_valid
        assert result.reason is None

    def test_expiry_boundary_is_still_valid(self):
        entry = make_entry(expires_in=timedelta(0))
        assert validate_cache(entry, 1, now=NOW).is_valid


class TestCacheEntry:
    """Tests for the persisted entry shape."""

    def test_serializes_with_camel_case_keys(self):
        data = json.loads(make_entry().to_json())
        assert set(data) == {"articles", "lastFetchedAt", "expiresAt", "version"}

        # Timestamps are epoch milliseconds
        assert isinstance(data["lastFetchedAt"], int)
        assert isinstance(data["expiresAt"], int)
        assert data["expiresAt"] - data["lastFetchedAt"] == 3_600_000
        assert data["lastFetchedAt"] == int(NOW.timestamp() * 1000)

        record = data["articles"][0]
        assert record["id"] == "a1"
        assert {"sourceName", "publishedAt", "fetchedAt"} <= set(record)
        assert "source_name" not in record
        assert "fetched_at" not in record

    def test_parse_round_trip(self):
        entry, reason = parse_cache_entry(make_entry().to_json())
        assert reason is None
        assert entry.articles[0].id == "a1"
        assert entry.expires_at == NOW + timedelta(hours=1)

    def test_naive_timestamps_are_utc(self):
        raw = json.dumps({
            "articles": [make_article("a1").model_dump(mode="json", by_alias=True)],
            "lastFetchedAt": "2020-01-01T00:00:00",
            "expiresAt": "2020-01-02T00:00:00",
            "version": 1,
        })

        entry, reason = parse_cache_entry(raw)

        assert reason is None
        assert entry.expires_at == datetime(2020, 1, 2, tzinfo=timezone.utc)
        assert validate_cache(entry, 1, now=NOW).reason == InvalidReason.EXPIRED

    def test_naive_now_is_utc(self):
        naive_now = NOW.replace(tzinfo=None)
        assert validate_cache(make_entry(), 1, now=naive_now).is_valid

    def test_out_of_range_timestamp_is_corrupted(self):
        raw = json.dumps({"articles": [], "lastFetchedAt": 1e30, "expiresAt": 1e30, "version": 1})
        entry, reason = parse_cache_entry(raw)
        assert entry is None
        assert reason == InvalidReason.CORRUPTED

    def test_parse_missing(self):
        entry, reason = parse_cache_entry(None)
        assert entry is None
        assert reason == InvalidReason.EMPTY

    def test_parse_garbage_is_corrupted(self):
        entry, reason = parse_cache_entry("{not json")
        assert entry is None
        assert reason == InvalidReason.CORRUPTED

    def test_parse_wrong_shape_is_corrupted(self):
        entry, reason = parse_cache_entry(json.dumps({"articles": "nope"}))
        assert entry is None
        assert reason == InvalidReason.CORRUPTED


class TestStores:
    """Tests for the memory and file stores."""

    def test_memory_store(self):
        store = MemoryCacheStore()

        async def run():
            await store.set_item("k", "v")
            got = await store.get_item("k")
            await store.remove_item("k")
            await store.remove_item("k")
            return got, await store.get_item("k")

        got, after = asyncio.run(run())
        assert got == "v"
        assert after is None

    def test_file_store_round_trip(self, tmp_path):
        store = FileCacheStore(tmp_path / "cache")

        async def run():
            assert await store.get_item("rss_articles_cache") is None
            await store.set_item("rss_articles_cache", '{"x": 1}')
            got = await store.get_item("rss_articles_cache")
            await store.remove_item("rss_articles_cache")
            return got, await store.get_item("rss_articles_cache")

        got, after = asyncio.run(run())
        assert got == '{"x": 1}'
        assert after is None
        assert list((tmp_path / "cache").iterdir()) == []

    def test_file_store_sanitizes_keys(self, tmp_path):
        store = FileCacheStore(tmp_path)
        asyncio.run(store.set_item("../escape", "v"))
        assert (tmp_path / ".._escape.json").exists()

    def test_create_cache_store(self, tmp_path):
        assert isinstance(create_cache_store("memory", str(tmp_path)), MemoryCacheStore)
        assert isinstance(create_cache_store("file", str(tmp_path)), FileCacheStore)
