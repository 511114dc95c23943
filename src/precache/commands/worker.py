"""Worker commands -- install, activate, fetch through, and purge.

Each command resolves the effective configuration (CLI flags, environment,
manifest, project and global config), opens the namespace store under the
cache directory, and drives a :class:`~precache.worker.Registration`
against the configured origin inside :func:`asyncio.run`.

Activation records the active namespace in the store.  ``fetch`` and
``purge`` (and the inspect commands) follow that record unless a version is
pinned with ``--version-tag`` or ``PRECACHE_VERSION``, so a version
installed with a flag or a manifest stays active on later runs.

:class:`~precache.exceptions.PrecacheError` subclasses are reported on
stderr and turned into the matching exit code.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Coroutine, Optional, TypeVar

import typer

from precache.cache import CacheStore
from precache.client import AsyncClient
from precache.exceptions import InvalidUsageError, PrecacheError
from precache.models import GlobalConfig, LifecyclePhase
from precache.output import error, info, success, warning

T = TypeVar("T")


def _resolve(ctx: typer.Context, manifest: Optional[str] = None) -> GlobalConfig:
    from precache.config import resolve_config

    obj = ctx.obj or {}
    return resolve_config(
        cli_origin=obj.get("origin"),
        cli_version=obj.get("version"),
        cli_manifest=manifest,
    )


def _version_pinned(ctx: typer.Context) -> bool:
    obj = ctx.obj or {}
    return obj.get("version") is not None or bool(os.environ.get("PRECACHE_VERSION"))


async def active_config(ctx: typer.Context, store: CacheStore) -> GlobalConfig:
    """Resolve the configuration, following the version activated last.

    ``--version-tag`` and ``PRECACHE_VERSION`` still win.  Otherwise the
    namespace recorded by the last activation replaces the configured
    version, provided it shares the configured prefix.
    """
    config = _resolve(ctx)
    if _version_pinned(ctx):
        return config
    recorded = await store.current()
    prefix = f"{config.worker.cache_prefix}-"
    if recorded is not None and recorded.startswith(prefix):
        config.worker.version = recorded[len(prefix):]
    return config


def _build_store() -> CacheStore:
    from precache.config import get_cache_dir

    return CacheStore(get_cache_dir())


def _build_client(config: GlobalConfig) -> AsyncClient:
    from precache.config import require_origin

    return AsyncClient(require_origin(config), config.request)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro*, mapping precache errors to a clean exit."""
    try:
        return asyncio.run(coro)
    except PrecacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


# ------------------------------------------------------------------ #
# install
# ------------------------------------------------------------------ #


def install_command(
    ctx: typer.Context,
    manifest: Optional[str] = typer.Option(
        None, "--manifest", "-m", help="JSON/YAML asset manifest overriding the configured list."
    ),
) -> None:
    """Precache the static assets for the configured version and activate it.

    Every asset is fetched with HTTP caches bypassed.  If any fetch fails the
    install is abandoned, nothing is activated, and the previous version
    keeps its namespace.

    Example::

        precache --origin https://example.com install
        precache install --manifest static/precache.yaml
    """

    async def _install() -> tuple[str, int]:
        config = _resolve(ctx, manifest)
        from precache.worker import Registration

        store = _build_store()
        try:
            async with _build_client(config) as client:
                registration = Registration(store, client)
                worker = await registration.register(config.worker)
                count = await store.count(await store.open(worker.namespace))
                return worker.namespace, count
        finally:
            store.close()

    namespace, count = _run(_install())
    success(f"{namespace} active with {count} cached entries.")


# ------------------------------------------------------------------ #
# activate
# ------------------------------------------------------------------ #


def activate_command(ctx: typer.Context) -> None:
    """Activate an installed version, deleting every other namespace.

    Example::

        precache --version-tag v2 activate
    """

    async def _activate() -> list[str]:
        config = _resolve(ctx)
        from precache.worker import Registration, Worker

        store = _build_store()
        try:
            async with _build_client(config) as client:
                registration = Registration(store, client)
                worker = Worker(config.worker, store, client)
                await worker.restore(LifecyclePhase.INSTALLED)
                await registration.activate(worker)
                return sorted(n for n in await store.list_namespaces() if n != worker.namespace)
        finally:
            store.close()

    leftovers = _run(_activate())
    if leftovers:
        warning(f"Could not delete: {', '.join(leftovers)}")
    success("Activated.")


# ------------------------------------------------------------------ #
# fetch
# ------------------------------------------------------------------ #


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Path or absolute URL to request."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    navigate: bool = typer.Option(
        False, "--navigate", help="Treat the request as a page navigation."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as 'Name: value'. Repeatable."
    ),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the answer body to this file."
    ),
) -> None:
    """Run one request through the active worker and print the answer.

    The active worker is the version activated last, unless
    ``--version-tag`` or ``PRECACHE_VERSION`` names another one.  Requests
    the worker does not intercept (non-GET, cross-origin, or no installed
    version) go straight to the network.

    Example::

        precache fetch /about/ --navigate
        precache fetch /img/avatar.jpg -o avatar.jpg
    """
    from precache.client.response import format_answer

    headers = _parse_headers(header or [])

    async def _fetch():  # noqa: ANN202
        from precache.worker import FetchEvent, Registration

        store = _build_store()
        try:
            config = await active_config(ctx, store)
            async with _build_client(config) as client:
                registration = Registration(store, client)
                try:
                    await registration.restore(config.worker)
                except InvalidUsageError as exc:
                    warning(f"{exc}; requests pass through to the network.")

                event = FetchEvent(method=method, url=url, navigation=navigate, headers=headers)
                answer = await registration.dispatch_fetch(event)
                await registration.drain()
                if answer is None:
                    info("Not intercepted; fetching from the network.")
                    answer = await client.fetch(method, url, headers=headers)
                return answer
        finally:
            store.close()

    answer = _run(_fetch())
    if output_file is not None:
        output_file.write_bytes(answer.content)
        info(f"HTTP {answer.status_code}: wrote {len(answer.content)} bytes to {output_file}")
        return
    format_answer(answer)


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header (expected 'Name: value'): {raw}")
            raise typer.Exit(code=2)
        headers[name.strip()] = value.strip()
    return headers


# ------------------------------------------------------------------ #
# purge
# ------------------------------------------------------------------ #


def purge_command(
    ctx: typer.Context,
    all_: bool = typer.Option(
        False, "--all", help="Also delete the current version's namespace."
    ),
) -> None:
    """Delete every namespace except the active one, without activating anything.

    Example::

        precache purge
        precache purge --all
    """
    from precache.models import CacheNamespace

    async def _purge() -> list[str]:
        store = _build_store()
        try:
            config = await active_config(ctx, store)
            current = CacheNamespace(
                prefix=config.worker.cache_prefix, version=config.worker.version
            )
            deleted: list[str] = []
            for name in sorted(await store.list_namespaces()):
                if name == current.name and not all_:
                    continue
                if await store.delete_namespace(name):
                    deleted.append(name)
            return deleted
        finally:
            store.close()

    deleted = _run(_purge())
    if not deleted:
        info("Nothing to delete.")
        return
    for name in deleted:
        info(f"Deleted {name}")
    success(f"Deleted {len(deleted)} namespace(s).")
