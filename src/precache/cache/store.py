"""Namespace-versioned response store backed by :mod:`diskcache`.

Each namespace (``quang-hugo-v1``, ``quang-hugo-v2``, ...) is its own
:class:`diskcache.Cache` directory under ``<root>/namespaces/``.  Entries
are serialised :class:`~precache.models.CacheEntry` dicts keyed by
:meth:`RequestIdentity.digest() <precache.models.RequestIdentity.digest>`,
so writing an existing key replaces it (last-write-wins).  Entries never
expire; they disappear only when their namespace is deleted.

diskcache keeps one SQLite connection per thread, so every diskcache call
runs on a single dedicated store thread; closing a namespace on that
thread releases its only connection.  Event handlers await store I/O
without stalling each other.  The namespace activated last is recorded
in a small ``current`` file next to ``namespaces/``.  Every storage
error is re-raised as :class:`~precache.exceptions.StoreFailure`; a failed
write never touches other keys, and there is no transaction spanning
several writes.
"""

from __future__ import annotations

import asyncio
import shutil
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional

import diskcache

from precache.config import atomic_write
from precache.exceptions import StoreFailure
from precache.models import CacheEntry, RequestIdentity

_STORAGE_ERRORS = (sqlite3.Error, OSError, diskcache.Timeout)


class NamespaceHandle:
    """An open namespace returned by :meth:`CacheStore.open`.

    A handle becomes closed when its namespace is deleted; any later read
    or write through it raises :class:`StoreFailure` instead of recreating
    the namespace.
    """

    def __init__(self, name: str, cache: diskcache.Cache) -> None:
        self.name = name
        self._cache = cache
        self.closed = False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<NamespaceHandle {self.name!r} ({state})>"

    def _checked(self) -> diskcache.Cache:
        if self.closed:
            raise StoreFailure(f"Namespace '{self.name}' has been deleted")
        return self._cache


class CacheStore:
    """Async key/value store of captured responses, partitioned by namespace.

    Args:
        root: Root directory for the store.  A ``namespaces/``
            subdirectory is created inside it.

    Example::

        store = CacheStore(get_cache_dir())
        handle = await store.open("quang-hugo-v1")
        await store.put(handle, identity, entry)
        hit = await store.get(handle, identity)
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root) / "namespaces"
        self._current_file = Path(root) / "current"
        self._handles: dict[str, NamespaceHandle] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def root(self) -> Path:
        return self._root

    async def open(self, name: str) -> NamespaceHandle:
        """Open namespace *name*, creating it if absent.

        Repeated opens of the same namespace share one handle.

        Raises:
            StoreFailure: If the namespace directory cannot be created.
        """
        _validate_name(name)
        handle = self._handles.get(name)
        if handle is not None and not handle.closed:
            return handle
        try:
            cache = await self._run(diskcache.Cache, str(self._root / name))
        except _STORAGE_ERRORS as exc:
            raise StoreFailure(f"Cannot open namespace '{name}': {exc}") from exc

        # A concurrent open may have registered the namespace meanwhile.
        handle = self._handles.get(name)
        if handle is not None and not handle.closed:
            await self._run(cache.close)
            return handle
        handle = NamespaceHandle(name, cache)
        self._handles[name] = handle
        return handle

    async def get(self, handle: NamespaceHandle, key: RequestIdentity) -> Optional[CacheEntry]:
        """Look up the entry answering *key*.

        Returns:
            The stored :class:`~precache.models.CacheEntry`, or ``None`` when
            nothing is stored for the key or the stored entry's vary headers
            do not match.

        Raises:
            StoreFailure: On storage errors or a deleted namespace.
        """
        cache = handle._checked()
        raw = await self._call(handle, cache.get, key.digest())
        if raw is None:
            return None
        entry = CacheEntry.model_validate(raw)
        if not entry.key.matches(key):
            return None
        return entry

    async def put(self, handle: NamespaceHandle, key: RequestIdentity, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any previous entry.

        Raises:
            StoreFailure: On storage errors (quota, disk full) or a deleted
                namespace.
        """
        cache = handle._checked()
        if entry.key != key:
            entry = entry.model_copy(update={"key": key})
        await self._call(handle, cache.set, key.digest(), entry.model_dump())

    async def match(
        self, key: RequestIdentity, namespace: Optional[str] = None
    ) -> Optional[CacheEntry]:
        """Find an entry for *key* in one namespace, or in any namespace.

        Without *namespace*, namespaces are searched in name order and the
        first hit wins.
        """
        available = await self.list_namespaces()
        names = [namespace] if namespace is not None else sorted(available)
        for name in names:
            if name not in available:
                continue
            entry = await self.get(await self.open(name), key)
            if entry is not None:
                return entry
        return None

    async def keys(self, handle: NamespaceHandle) -> list[RequestIdentity]:
        """Return the identities of every entry in the namespace."""
        cache = handle._checked()

        def _collect() -> list[RequestIdentity]:
            return [CacheEntry.model_validate(cache[k]).key for k in cache]

        return await self._call(handle, _collect)

    async def count(self, handle: NamespaceHandle) -> int:
        cache = handle._checked()
        return await self._call(handle, len, cache)

    async def delete_namespace(self, name: str) -> bool:
        """Delete namespace *name* and every entry in it.

        Open handles on the namespace are closed first.

        Returns:
            ``True`` if the namespace existed.

        Raises:
            StoreFailure: If the directory cannot be removed.
        """
        _validate_name(name)
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.closed = True
            await self._run(handle._cache.close)

        path = self._root / name
        if not path.is_dir():
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as exc:
            raise StoreFailure(f"Cannot delete namespace '{name}': {exc}") from exc
        if await self._read_current() == name:
            await self.set_current(None)
        return True

    async def current(self) -> Optional[str]:
        """Return the namespace recorded by :meth:`set_current`.

        ``None`` when nothing was recorded or the recorded namespace is no
        longer on disk.
        """
        name = await self._read_current()
        if name is None or name not in await self.list_namespaces():
            return None
        return name

    async def set_current(self, name: Optional[str]) -> None:
        """Record *name* as the active namespace, or clear the record with ``None``.

        Raises:
            StoreFailure: If the record cannot be written.
        """
        if name is not None:
            _validate_name(name)
        try:
            if name is None:
                await asyncio.to_thread(self._current_file.unlink, missing_ok=True)
            else:
                await asyncio.to_thread(atomic_write, self._current_file, name + "\n")
        except OSError as exc:
            raise StoreFailure(f"Cannot record active namespace: {exc}") from exc

    async def _read_current(self) -> Optional[str]:
        def _read() -> Optional[str]:
            try:
                return self._current_file.read_text(encoding="utf-8").strip() or None
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_read)
        except OSError as exc:
            raise StoreFailure(f"Cannot read active namespace: {exc}") from exc

    async def list_namespaces(self) -> set[str]:
        """Return the names of every namespace on disk."""

        def _scan() -> set[str]:
            if not self._root.is_dir():
                return set()
            return {p.name for p in self._root.iterdir() if p.is_dir()}

        try:
            return await asyncio.to_thread(_scan)
        except OSError as exc:
            raise StoreFailure(f"Cannot list namespaces under {self._root}: {exc}") from exc

    async def stats(self) -> dict[str, Any]:
        """Return ``directory`` and per-namespace entry counts."""
        sizes: dict[str, int] = {}
        for name in sorted(await self.list_namespaces()):
            sizes[name] = await self.count(await self.open(name))
        return {"directory": str(self._root), "namespaces": sizes}

    def close(self) -> None:
        """Close every open handle and stop the store thread.

        The store can be used again afterwards; a new thread is started on
        the next call.
        """
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.closed = True
        if self._executor is None:
            return
        for handle in handles:
            self._executor.submit(handle._cache.close).result()
        self._executor.shutdown(wait=True)
        self._executor = None

    async def _run(self, func: Any, *args: Any) -> Any:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="precache-store")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def _call(self, handle: NamespaceHandle, func: Any, *args: Any) -> Any:
        try:
            return await self._run(func, *args)
        except _STORAGE_ERRORS as exc:
            raise StoreFailure(f"Store error in namespace '{handle.name}': {exc}") from exc


def _validate_name(name: str) -> None:
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise StoreFailure(f"Invalid namespace name: {name!r}")
