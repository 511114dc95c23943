"""Install and activate steps for one worker version.

:class:`LifecycleController` moves a :class:`~precache.models.WorkerState`
through ``installing -> installed -> activating -> activated``:

* **install** downloads every static asset with HTTP caches bypassed.  All
  downloads must succeed before anything is written, and a single failure
  fails the whole install with :class:`~precache.exceptions.InstallFailure`
  (the worker becomes ``redundant``; nothing is retried).
* **activate** deletes every namespace other than the current one and only
  then claims the client sessions.

Ordering between the two is enforced by the owning
:class:`~precache.worker.service.Worker`, which serialises lifecycle events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from precache.cache import CacheStore
from precache.client import AsyncClient
from precache.client.response import entry_from_response
from precache.exceptions import InstallFailure, NetworkFailure, StoreFailure
from precache.models import CacheEntry, LifecyclePhase, RequestIdentity, WorkerState
from precache.output import get_output

logger = logging.getLogger(__name__)


class LifecycleController:
    """Drives the store through install and activation for one version.

    Args:
        state: The worker's state; ``phase`` is updated in place.
        store: The shared store.
        client: Network client bound to the serving origin.
        assets: Absolute paths to precache, in manifest order.
    """

    def __init__(
        self,
        state: WorkerState,
        store: CacheStore,
        client: AsyncClient,
        assets: list[str],
    ) -> None:
        self._state = state
        self._store = store
        self._client = client
        self._assets = list(assets)

    @property
    def assets(self) -> list[str]:
        return list(self._assets)

    async def install(self) -> int:
        """Precache every static asset into the current namespace.

        Returns:
            The number of entries written.

        Raises:
            InstallFailure: If any asset fails to download or the store
                rejects a write.
        """
        output = get_output()
        name = self._state.namespace.name
        self._state.phase = LifecyclePhase.INSTALLING
        output.info(f"Installing {name}...")

        try:
            results = await asyncio.gather(
                *(self._fetch_asset(path) for path in self._assets), return_exceptions=True
            )
            # Every fetch settles before the first failure is raised.
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                raise failures[0]
            fetched = list(results)
            output.debug(f"Caching {len(fetched)} static assets")
            handle = await self._store.open(name)
            for key, entry in fetched:
                await self._store.put(handle, key, entry)
        except (InstallFailure, NetworkFailure, StoreFailure) as exc:
            self._state.phase = LifecyclePhase.REDUNDANT
            if isinstance(exc, InstallFailure):
                raise
            raise InstallFailure(f"Install of {name} failed: {exc}") from exc

        self._state.phase = LifecyclePhase.INSTALLED
        return len(fetched)

    async def activate(self, claim: Optional[Callable[[], None]] = None) -> list[str]:
        """Purge stale namespaces, record this one as current, then claim traffic.

        Args:
            claim: Invoked after the purge completes.

        Returns:
            The names of the namespaces that were deleted.
        """
        get_output().info(f"Activating {self._state.namespace.name}...")
        self._state.phase = LifecyclePhase.ACTIVATING
        deleted = await self.purge()
        await self._store.set_current(self._state.namespace.name)
        self._state.phase = LifecyclePhase.ACTIVATED
        if claim is not None:
            claim()
        return deleted

    async def purge(self) -> list[str]:
        """Delete every namespace whose name is not the current one.

        A namespace that cannot be deleted is logged and left for the next
        activation; the others are still removed.
        """
        current = self._state.namespace.name
        deleted: list[str] = []
        for name in sorted(await self._store.list_namespaces()):
            if name == current:
                continue
            get_output().info(f"Deleting old cache: {name}")
            try:
                if await self._store.delete_namespace(name):
                    deleted.append(name)
            except StoreFailure as exc:
                logger.warning("Could not delete namespace %s: %s", name, exc)
        return deleted

    async def _fetch_asset(self, path: str) -> tuple[RequestIdentity, CacheEntry]:
        response = await self._client.fetch("GET", path, bypass_cache=True)
        if not response.is_success:
            raise InstallFailure(f"Asset {path} returned HTTP {response.status_code}")
        if response.headers.get("vary", "").strip() == "*":
            raise InstallFailure(f"Asset {path} is served with Vary: *")
        key = RequestIdentity(method="GET", url=self._client.resolve(path))
        key = key.select_vary(response.headers.get("vary"))
        return key, entry_from_response(key, response)
