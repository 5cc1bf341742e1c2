"""Tests for the generation-partitioned CacheStore."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from cachegate.cache import CacheStore
from cachegate.exceptions import StoreError
from cachegate.models import (
    STORED_AT_HEADER,
    CacheConfig,
    CachedEntry,
    RequestDescriptor,
    make_cache_key,
)


@pytest.fixture()
def store(tmp_path):
    """Create a CacheStore rooted at tmp_path."""
    s = CacheStore(tmp_path, CacheConfig())
    yield s
    s.close()


def _entry(url: str, body: bytes = b"hello", stored_at: float = 1000.0) -> CachedEntry:
    return CachedEntry(
        key=make_cache_key("GET", url),
        url=url,
        status_code=200,
        headers={"content-type": "text/plain"},
        body=body,
        stored_at=stored_at,
    )


# ------------------------------------------------------------------ #
# Generations
# ------------------------------------------------------------------ #


class TestGenerations:
    def test_open_creates_generation(self, store: CacheStore) -> None:
        store.open("app-v1")
        assert store.has_generation("app-v1")
        assert store.list_generations() == {"app-v1"}

    def test_open_returns_same_handle(self, store: CacheStore) -> None:
        assert store.open("app-v1") is store.open("app-v1")

    def test_list_generations_empty_store(self, store: CacheStore) -> None:
        assert store.list_generations() == set()

    @pytest.mark.parametrize("name", ["", "../escape", "a/b", ".hidden", "has space"])
    def test_invalid_names_rejected(self, store: CacheStore, name: str) -> None:
        with pytest.raises(StoreError, match="Invalid generation name"):
            store.open(name)

    def test_generations_are_isolated(self, store: CacheStore) -> None:
        v1 = store.open("app-v1")
        v2 = store.open("app-v2")
        entry = _entry("https://a.test/x")
        store.put(v1, entry.key, entry)
        assert store.get(v1, entry.key) is not None
        assert store.get(v2, entry.key) is None

    def test_delete_generation(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        entry = _entry("https://a.test/x")
        store.put(handle, entry.key, entry)

        assert store.delete_generation("app-v1") is True
        assert not store.has_generation("app-v1")

    def test_delete_generation_is_idempotent(self, store: CacheStore) -> None:
        store.open("app-v1")
        assert store.delete_generation("app-v1") is True
        assert store.delete_generation("app-v1") is False
        assert store.delete_generation("never-existed") is False

    def test_reopen_after_delete_is_empty(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        entry = _entry("https://a.test/x")
        store.put(handle, entry.key, entry)
        store.delete_generation("app-v1")

        reopened = store.open("app-v1")
        assert reopened is not handle
        assert store.count(reopened) == 0


# ------------------------------------------------------------------ #
# Entries
# ------------------------------------------------------------------ #


class TestEntries:
    def test_put_and_get_roundtrip(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        entry = _entry("https://a.test/x", body=b"\x00\x01binary")
        store.put(handle, entry.key, entry)

        result = store.get(handle, entry.key)
        assert result == entry
        assert result.body == b"\x00\x01binary"

    def test_get_miss_returns_none(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        assert store.get(handle, make_cache_key("GET", "https://a.test/missing")) is None

    def test_put_replaces_existing(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        store.put(handle, make_cache_key("GET", "https://a.test/x"), _entry("https://a.test/x", b"old"))
        store.put(handle, make_cache_key("GET", "https://a.test/x"), _entry("https://a.test/x", b"new"))

        assert store.count(handle) == 1
        assert store.get(handle, make_cache_key("GET", "https://a.test/x")).body == b"new"

    def test_delete(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        entry = _entry("https://a.test/x")
        store.put(handle, entry.key, entry)

        assert store.delete(handle, entry.key) is True
        assert store.delete(handle, entry.key) is False
        assert store.get(handle, entry.key) is None

    def test_entries_and_count(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        for name in ("a", "b", "c"):
            entry = _entry(f"https://a.test/{name}")
            store.put(handle, entry.key, entry)

        assert store.count(handle) == 3
        assert [e.url for e in store.entries(handle)] == [
            "https://a.test/a",
            "https://a.test/b",
            "https://a.test/c",
        ]

    def test_clear(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        for name in ("a", "b"):
            entry = _entry(f"https://a.test/{name}")
            store.put(handle, entry.key, entry)

        assert store.clear(handle) == 2
        assert store.count(handle) == 0
        assert store.has_generation("app-v1")


# ------------------------------------------------------------------ #
# Stored order and eviction
# ------------------------------------------------------------------ #


class TestStoredOrder:
    def test_keys_in_insertion_order(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        keys = []
        for name in ("first", "second", "third"):
            entry = _entry(f"https://a.test/{name}")
            store.put(handle, entry.key, entry)
            keys.append(entry.key)
        assert store.keys(handle) == keys

    def test_rewrite_moves_key_to_end(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        first = _entry("https://a.test/first")
        second = _entry("https://a.test/second")
        store.put(handle, first.key, first)
        store.put(handle, second.key, second)
        store.put(handle, first.key, _entry("https://a.test/first", b"again"))

        assert store.keys(handle) == [second.key, first.key]

    def test_purge_oldest(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        for i in range(5):
            entry = _entry(f"https://a.test/{i}")
            store.put(handle, entry.key, entry)

        assert store.purge_oldest(handle, 2) == 2
        assert [e.url for e in store.entries(handle)] == [
            "https://a.test/2",
            "https://a.test/3",
            "https://a.test/4",
        ]

    def test_purge_more_than_present(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        entry = _entry("https://a.test/only")
        store.put(handle, entry.key, entry)
        assert store.purge_oldest(handle, 10) == 1
        assert store.count(handle) == 0


# ------------------------------------------------------------------ #
# Write failures
# ------------------------------------------------------------------ #


class TestWriteFailures:
    def test_quota_error_purges_and_retries(self, tmp_path, monkeypatch) -> None:
        store = CacheStore(tmp_path, CacheConfig(evict_on_quota_error=True))
        handle = store.open("app-v1")
        for i in range(4):
            entry = _entry(f"https://a.test/{i}")
            store.put(handle, entry.key, entry)

        real_write = store._write
        calls = {"n": 0}

        def flaky_write(h, key, entry):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("disk full")
            real_write(h, key, entry)

        monkeypatch.setattr(store, "_write", flaky_write)
        new = _entry("https://a.test/new")
        store.put(handle, new.key, new)

        urls = [e.url for e in store.entries(handle)]
        assert urls == ["https://a.test/2", "https://a.test/3", "https://a.test/new"]
        store.close()

    def test_quota_error_without_eviction_raises(self, tmp_path, monkeypatch) -> None:
        store = CacheStore(tmp_path, CacheConfig(evict_on_quota_error=False))
        handle = store.open("app-v1")

        def failing_write(h, key, entry):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write", failing_write)
        entry = _entry("https://a.test/x")
        with pytest.raises(StoreError, match="disk full"):
            store.put(handle, entry.key, entry)
        store.close()

    def test_retry_failure_raises(self, tmp_path, monkeypatch) -> None:
        store = CacheStore(tmp_path, CacheConfig(evict_on_quota_error=True))
        handle = store.open("app-v1")

        def failing_write(h, key, entry):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_write", failing_write)
        entry = _entry("https://a.test/x")
        with pytest.raises(StoreError, match="after purge"):
            store.put(handle, entry.key, entry)
        store.close()


class TestCachedEntry:
    def test_from_response_stamps_and_strips_headers(self) -> None:
        descriptor = RequestDescriptor(url="https://a.test/x")
        response = httpx.Response(
            200, headers={"Content-Type": "text/plain"}, content=b"body"
        )
        entry = CachedEntry.from_response(descriptor, response, stored_at=0.0)

        assert entry.key == descriptor.cache_key
        assert entry.headers["content-type"] == "text/plain"
        assert "content-length" not in entry.headers
        assert entry.headers[STORED_AT_HEADER] == "1970-01-01T00:00:00+00:00"

    def test_to_response_replays_entry(self) -> None:
        rebuilt = _entry("https://a.test/x", body=b"body").to_response()
        assert rebuilt.status_code == 200
        assert rebuilt.content == b"body"
        assert rebuilt.headers["content-type"] == "text/plain"
        assert str(rebuilt.request.url) == "https://a.test/x"


# ------------------------------------------------------------------ #
# Concurrency
# ------------------------------------------------------------------ #


class TestConcurrency:
    def test_concurrent_writers_and_readers_on_one_key(self, store: CacheStore) -> None:
        handle = store.open("app-v1")
        url = "https://a.test/shared"
        key = make_cache_key("GET", url)
        bodies = {f"v{i}".encode() * 512 for i in range(8)}

        def write(body: bytes) -> None:
            for _ in range(5):
                store.put(handle, key, _entry(url, body=body))

        def read() -> list:
            return [store.get(handle, key) for _ in range(20)]

        with ThreadPoolExecutor(max_workers=12) as pool:
            readers = [pool.submit(read) for _ in range(4)]
            writers = [pool.submit(write, body) for body in bodies]
            for future in writers:
                future.result()
            seen = [entry for future in readers for entry in future.result()]

        for entry in seen:
            assert entry is None or (entry.url == url and entry.body in bodies)
        assert store.count(handle) == 1
        assert store.keys(handle) == [key]
        assert store.get(handle, key).body in bodies

    def test_open_from_threads_shares_one_handle(self, store: CacheStore) -> None:
        with ThreadPoolExecutor(max_workers=8) as pool:
            handles = list(pool.map(lambda _: store.open("app-v1"), range(16)))
        assert all(h is handles[0] for h in handles)

    def test_open_and_delete_from_threads(self, store: CacheStore) -> None:
        def churn(i: int) -> None:
            if i % 2:
                store.delete_generation("app-v1")
            else:
                store.open("app-v1")

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(churn, range(32)))

        handle = store.open("app-v1")
        entry = _entry("https://a.test/after")
        store.put(handle, entry.key, entry)
        assert store.get(handle, entry.key) == entry
