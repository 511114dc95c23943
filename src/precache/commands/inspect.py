"""Inspect commands -- read-only views of the namespace store.

``precache namespaces`` lists every namespace with its entry count and marks
the active one; ``precache inspect`` lists the entries of one namespace.
Neither command needs an origin.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from precache.cache import CacheStore
from precache.exceptions import ConfigError, ManifestError
from precache.output import error, info, print_table, suggest


async def _active_namespace(ctx: typer.Context, store: CacheStore) -> str:
    from precache.commands.worker import active_config
    from precache.models import CacheNamespace

    try:
        config = await active_config(ctx, store)
    except (ConfigError, ManifestError) as exc:
        error(f"Config error: {exc}")
        raise typer.Exit(code=2) from None
    return CacheNamespace(prefix=config.worker.cache_prefix, version=config.worker.version).name


def namespaces_command(ctx: typer.Context) -> None:
    """List namespaces in the store.

    Example::

        precache namespaces
        precache --json namespaces
    """
    from precache.config import get_cache_dir

    async def _stats() -> tuple[str, dict]:
        store = CacheStore(get_cache_dir())
        try:
            return await _active_namespace(ctx, store), await store.stats()
        finally:
            store.close()

    current, stats = asyncio.run(_stats())
    info(f"Store directory: {stats['directory']}")
    rows = [
        [name, str(size), "yes" if name == current else ""]
        for name, size in stats["namespaces"].items()
    ]
    if not rows:
        info("No namespaces.")
        suggest("Run: precache install")
        return
    print_table(["Namespace", "Entries", "Current"], rows, title="Namespaces")


def inspect_command(
    ctx: typer.Context,
    namespace: Optional[str] = typer.Argument(
        None, help="Namespace to inspect (defaults to the active version)."
    ),
) -> None:
    """List the entries stored in a namespace.

    Example::

        precache inspect
        precache inspect quang-hugo-v1
    """
    from precache.config import get_cache_dir
    from precache.models import CacheEntry

    async def _entries() -> tuple[str, Optional[list[CacheEntry]]]:
        store = CacheStore(get_cache_dir())
        try:
            name = namespace or await _active_namespace(ctx, store)
            if name not in await store.list_namespaces():
                return name, None
            handle = await store.open(name)
            entries = []
            for key in await store.keys(handle):
                entry = await store.get(handle, key)
                if entry is not None:
                    entries.append(entry)
            return name, entries
        finally:
            store.close()

    name, entries = asyncio.run(_entries())
    if entries is None:
        error(f"Namespace '{name}' not found.")
        suggest("List namespaces with: precache namespaces")
        raise typer.Exit(code=2)

    rows = [
        [
            e.key.url,
            str(e.status),
            e.headers.get("content-type", ""),
            str(len(e.body)),
        ]
        for e in sorted(entries, key=lambda e: e.key.url)
    ]
    print_table(["URL", "Status", "Content-Type", "Bytes"], rows, title=name)
