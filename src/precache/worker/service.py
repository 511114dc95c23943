"""One deployable worker version and its message dispatch.

A :class:`Worker` owns the explicit state of a version (its namespace and
lifecycle phase) and composes the lifecycle controller, the fetch
interceptor, and the fallback provider.  Every incoming event goes through
:meth:`Worker.dispatch`, which routes it to the handler valid for the
current phase:

=================  ===========================  =====================
Event              Accepted in                  Moves to
=================  ===========================  =====================
``InstallEvent``   ``parsed``                   ``installed``
``ActivateEvent``  ``installed``                ``activated``
``FetchEvent``     ``activated`` (else passed   --
                   through)
=================  ===========================  =====================

Lifecycle events are serialised by a lock, so install finishes (or fails)
before activation starts.  Fetch events run concurrently with each other.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Union

import httpx

from precache.cache import CacheStore
from precache.client import AsyncClient
from precache.exceptions import InvalidUsageError
from precache.models import CacheNamespace, LifecyclePhase, WorkerConfig, WorkerState
from precache.output import get_output
from precache.worker.events import ActivateEvent, FetchEvent, InstallEvent
from precache.worker.fallback import FallbackProvider
from precache.worker.interceptor import FetchInterceptor
from precache.worker.lifecycle import LifecycleController

Event = Union[InstallEvent, ActivateEvent, FetchEvent]


class Worker:
    """A worker version bound to a store and a network client.

    The offline page is always precached, even when the configured asset
    list omits it.

    Args:
        config: Version tag, asset list, offline page, and ``skip_waiting``.
        store: The shared store.
        client: Network client bound to the serving origin.
    """

    def __init__(self, config: WorkerConfig, store: CacheStore, client: AsyncClient) -> None:
        self._config = config
        self._store = store
        self.state = WorkerState(
            namespace=CacheNamespace(prefix=config.cache_prefix, version=config.version)
        )

        assets = list(config.static_assets)
        if config.offline_page not in assets:
            assets.append(config.offline_page)

        self.fallback = FallbackProvider(self.state, store, client.resolve(config.offline_page))
        self.lifecycle = LifecycleController(self.state, store, client, assets)
        self.interceptor = FetchInterceptor(self.state, store, client, self.fallback)
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"<Worker {self.namespace} ({self.phase.value})>"

    @property
    def namespace(self) -> str:
        return self.state.namespace.name

    @property
    def phase(self) -> LifecyclePhase:
        return self.state.phase

    @property
    def skip_waiting(self) -> bool:
        return self._config.skip_waiting

    async def dispatch(self, event: Event) -> Optional[httpx.Response]:
        """Deliver *event* to the handler for the current phase.

        Returns:
            The answer for a :class:`FetchEvent` (``None`` means pass
            through); ``None`` for lifecycle events.

        Raises:
            InvalidUsageError: For a lifecycle event the current phase does
                not accept.
            InstallFailure: If install fails.
        """
        if isinstance(event, FetchEvent):
            return await self._on_fetch(event)
        async with self._lock:
            if isinstance(event, InstallEvent):
                self._expect(LifecyclePhase.PARSED, event)
                await self.lifecycle.install()
            elif isinstance(event, ActivateEvent):
                self._expect(LifecyclePhase.INSTALLED, event)
                await self.lifecycle.activate(event.claim)
            else:
                raise InvalidUsageError(f"Unsupported event: {event!r}")
        return None

    async def restore(self, phase: LifecyclePhase = LifecyclePhase.ACTIVATED) -> None:
        """Adopt a namespace installed by an earlier process.

        Args:
            phase: ``installed`` to activate it next, or ``activated`` to
                serve from it straight away.

        Raises:
            InvalidUsageError: If the namespace is not on disk.
        """
        if self.namespace not in await self._store.list_namespaces():
            raise InvalidUsageError(f"Namespace '{self.namespace}' is not installed")
        self.state.phase = phase

    def retire(self) -> None:
        """Mark this worker superseded."""
        self.state.phase = LifecyclePhase.REDUNDANT

    async def drain(self) -> None:
        """Wait for every background write started by fetch events."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _on_fetch(self, event: FetchEvent) -> Optional[httpx.Response]:
        if self.state.phase is not LifecyclePhase.ACTIVATED:
            get_output().debug(f"{self.namespace} is {self.phase.value}; passing {event.url} through")
            return None
        try:
            return await self.interceptor.handle(event)
        finally:
            for task in event.pending:
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    def _expect(self, phase: LifecyclePhase, event: Event) -> None:
        if self.state.phase is not phase:
            raise InvalidUsageError(
                f"{type(event).__name__} not accepted by {self.namespace} in phase "
                f"'{self.state.phase.value}'"
            )
