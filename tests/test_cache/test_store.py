"""Tests for the namespace-versioned response store."""

from __future__ import annotations

import asyncio
import sqlite3

import pytest

from precache.cache import CacheStore
from precache.exceptions import StoreFailure
from precache.models import CacheEntry, RequestIdentity


URL = "https://blog.example.com/about/"


def _key(url: str = URL, **vary: str) -> RequestIdentity:
    return RequestIdentity(method="GET", url=url, vary=vary)


def _entry(key: RequestIdentity, body: bytes = b"<h1>About</h1>", status: int = 200) -> CacheEntry:
    return CacheEntry(key=key, status=status, headers={"content-type": "text/html"}, body=body)


class _BrokenCache:
    """Stands in for a diskcache.Cache whose database is unusable."""

    def get(self, *args):
        raise sqlite3.OperationalError("database is locked")

    def set(self, *args):
        raise sqlite3.OperationalError("database or disk is full")

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# open / list
# ---------------------------------------------------------------------------


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_creates_namespace(self, store: CacheStore) -> None:
        await store.open("quang-hugo-v1")
        assert await store.list_namespaces() == {"quang-hugo-v1"}

    @pytest.mark.asyncio
    async def test_open_twice_shares_handle(self, store: CacheStore) -> None:
        first = await store.open("quang-hugo-v1")
        second = await store.open("quang-hugo-v1")
        assert first is second

    @pytest.mark.asyncio
    async def test_list_empty_store(self, store: CacheStore) -> None:
        assert await store.list_namespaces() == set()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "..", "a/b", "a\\b"])
    async def test_invalid_name_rejected(self, store: CacheStore, name: str) -> None:
        with pytest.raises(StoreFailure, match="Invalid namespace name"):
            await store.open(name)


# ---------------------------------------------------------------------------
# get / put
# ---------------------------------------------------------------------------


class TestGetPut:
    @pytest.mark.asyncio
    async def test_put_then_get(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        key = _key()
        await store.put(handle, key, _entry(key))

        entry = await store.get(handle, key)
        assert entry is not None
        assert entry.status == 200
        assert entry.body == b"<h1>About</h1>"
        assert entry.headers["content-type"] == "text/html"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        assert await store.get(handle, _key()) is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        key = _key()
        await store.put(handle, key, _entry(key, body=b"old"))
        await store.put(handle, key, _entry(key, body=b"new"))

        entry = await store.get(handle, key)
        assert entry is not None
        assert entry.body == b"new"
        assert await store.count(handle) == 1

    @pytest.mark.asyncio
    async def test_fragment_is_not_part_of_identity(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))
        assert await store.get(handle, _key(URL + "#team")) is not None

    @pytest.mark.asyncio
    async def test_method_is_part_of_identity(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))
        head = RequestIdentity(method="head", url=URL)
        assert await store.get(handle, head) is None

    @pytest.mark.asyncio
    async def test_put_rewrites_entry_key(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        other = _key("https://blog.example.com/other/")
        await store.put(handle, _key(), _entry(other))

        entry = await store.get(handle, _key())
        assert entry is not None
        assert entry.key.url == URL

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self, store: CacheStore) -> None:
        v1 = await store.open("quang-hugo-v1")
        v2 = await store.open("quang-hugo-v2")
        await store.put(v1, _key(), _entry(_key()))
        assert await store.get(v2, _key()) is None

    @pytest.mark.asyncio
    async def test_concurrent_puts_leave_one_entry(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        key = _key()
        await asyncio.gather(
            *(store.put(handle, key, _entry(key, body=f"copy {i}".encode())) for i in range(5))
        )
        entry = await store.get(handle, key)
        assert entry is not None
        assert entry.body.startswith(b"copy ")
        assert await store.count(handle) == 1


# ---------------------------------------------------------------------------
# Vary matching
# ---------------------------------------------------------------------------


class TestVary:
    @pytest.mark.asyncio
    async def test_matching_vary_header_hits(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        stored = _key(**{"accept-language": "en"})
        await store.put(handle, stored, _entry(stored))

        request = _key(**{"Accept-Language": "en", "user-agent": "test"})
        assert await store.get(handle, request) is not None

    @pytest.mark.asyncio
    async def test_differing_vary_header_misses(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        stored = _key(**{"accept-language": "en"})
        await store.put(handle, stored, _entry(stored))

        assert await store.get(handle, _key(**{"accept-language": "de"})) is None

    @pytest.mark.asyncio
    async def test_missing_vary_header_misses(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        stored = _key(**{"accept-language": "en"})
        await store.put(handle, stored, _entry(stored))

        assert await store.get(handle, _key()) is None


# ---------------------------------------------------------------------------
# match
# ---------------------------------------------------------------------------


class TestMatch:
    @pytest.mark.asyncio
    async def test_match_in_named_namespace(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))
        assert await store.match(_key(), namespace="quang-hugo-v1") is not None

    @pytest.mark.asyncio
    async def test_match_across_namespaces(self, store: CacheStore) -> None:
        await store.open("quang-hugo-v1")
        v2 = await store.open("quang-hugo-v2")
        await store.put(v2, _key(), _entry(_key(), body=b"v2"))

        entry = await store.match(_key())
        assert entry is not None
        assert entry.body == b"v2"

    @pytest.mark.asyncio
    async def test_match_missing_namespace_does_not_create_it(self, store: CacheStore) -> None:
        assert await store.match(_key(), namespace="quang-hugo-v9") is None
        assert "quang-hugo-v9" not in await store.list_namespaces()


# ---------------------------------------------------------------------------
# keys / count / stats
# ---------------------------------------------------------------------------


class TestIntrospection:
    @pytest.mark.asyncio
    async def test_keys_lists_identities(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        urls = ["https://blog.example.com/", "https://blog.example.com/logo.png"]
        for url in urls:
            await store.put(handle, _key(url), _entry(_key(url)))

        keys = await store.keys(handle)
        assert sorted(k.url for k in keys) == urls

    @pytest.mark.asyncio
    async def test_stats(self, store: CacheStore) -> None:
        v1 = await store.open("quang-hugo-v1")
        await store.open("quang-hugo-v2")
        await store.put(v1, _key(), _entry(_key()))

        stats = await store.stats()
        assert stats["namespaces"] == {"quang-hugo-v1": 1, "quang-hugo-v2": 0}
        assert stats["directory"] == str(store.root)


# ---------------------------------------------------------------------------
# delete_namespace
# ---------------------------------------------------------------------------


class TestDeleteNamespace:
    @pytest.mark.asyncio
    async def test_delete_removes_namespace_and_entries(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))

        assert await store.delete_namespace("quang-hugo-v1") is True
        assert await store.list_namespaces() == set()

        reopened = await store.open("quang-hugo-v1")
        assert await store.get(reopened, _key()) is None

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store: CacheStore) -> None:
        assert await store.delete_namespace("quang-hugo-v1") is False

    @pytest.mark.asyncio
    async def test_write_through_stale_handle_fails(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.delete_namespace("quang-hugo-v1")

        assert handle.closed
        with pytest.raises(StoreFailure, match="has been deleted"):
            await store.put(handle, _key(), _entry(_key()))
        assert "quang-hugo-v1" not in await store.list_namespaces()

    @pytest.mark.asyncio
    async def test_delete_leaves_other_namespaces(self, store: CacheStore) -> None:
        await store.open("quang-hugo-v1")
        v2 = await store.open("quang-hugo-v2")
        await store.put(v2, _key(), _entry(_key()))

        await store.delete_namespace("quang-hugo-v1")
        assert await store.list_namespaces() == {"quang-hugo-v2"}
        assert await store.get(v2, _key()) is not None


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


class TestStorageErrors:
    @pytest.mark.asyncio
    async def test_write_error_becomes_store_failure(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        handle._cache = _BrokenCache()
        with pytest.raises(StoreFailure, match="disk is full"):
            await store.put(handle, _key(), _entry(_key()))

    @pytest.mark.asyncio
    async def test_read_error_becomes_store_failure(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        handle._cache = _BrokenCache()
        with pytest.raises(StoreFailure, match="locked"):
            await store.get(handle, _key())

    def test_store_failure_exit_code(self) -> None:
        assert StoreFailure("x").exit_code == 4


# ---------------------------------------------------------------------------
# Store thread
# ---------------------------------------------------------------------------


def _connection(cache):
    return getattr(cache._local, "con", None)


class TestStoreThread:
    @pytest.mark.asyncio
    async def test_diskcache_calls_share_one_thread(self, store: CacheStore) -> None:
        import threading

        first = await store._run(threading.get_ident)
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))
        second = await store._run(threading.get_ident)
        assert first == second
        assert first != threading.get_ident()

    @pytest.mark.asyncio
    async def test_deleted_namespace_releases_its_connection(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v0")
        await store.put(handle, _key(), _entry(_key()))
        assert await store.get(handle, _key()) is not None
        cache = handle._cache

        await store.delete_namespace("quang-hugo-v0")

        assert await store._run(_connection, cache) is None
        assert _connection(cache) is None

    @pytest.mark.asyncio
    async def test_usable_after_close(self, store: CacheStore) -> None:
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, _key(), _entry(_key()))
        store.close()

        handle = await store.open("quang-hugo-v1")
        assert await store.get(handle, _key()) is not None


# ---------------------------------------------------------------------------
# Active namespace record
# ---------------------------------------------------------------------------


class TestCurrent:
    @pytest.mark.asyncio
    async def test_nothing_recorded(self, store: CacheStore) -> None:
        assert await store.current() is None

    @pytest.mark.asyncio
    async def test_record_survives_a_new_store(self, store: CacheStore, tmp_path) -> None:
        await store.open("quang-hugo-v2")
        await store.set_current("quang-hugo-v2")

        reopened = CacheStore(tmp_path / "store")
        try:
            assert await reopened.current() == "quang-hugo-v2"
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_record_ignored_when_namespace_missing(self, store: CacheStore) -> None:
        await store.set_current("quang-hugo-v2")
        assert await store.current() is None

    @pytest.mark.asyncio
    async def test_deleting_recorded_namespace_clears_record(self, store: CacheStore) -> None:
        await store.open("quang-hugo-v1")
        await store.open("quang-hugo-v2")
        await store.set_current("quang-hugo-v1")

        await store.delete_namespace("quang-hugo-v2")
        assert await store.current() == "quang-hugo-v1"
        await store.delete_namespace("quang-hugo-v1")
        assert await store.current() is None
        assert not (store.root.parent / "current").exists()

    @pytest.mark.asyncio
    async def test_invalid_name_rejected(self, store: CacheStore) -> None:
        with pytest.raises(StoreFailure):
            await store.set_current("../etc")
