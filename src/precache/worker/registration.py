"""Ownership of worker versions and client sessions.

:class:`Registration` plays the role of the browser's service-worker
registration: it installs new versions, decides when a waiting version may
activate, and routes each traffic event to the worker controlling the
session that issued it.

A freshly installed worker activates straight away when there is no active
worker, when its ``skip_waiting`` flag is set, or when no session is still
controlled by the active worker.  Otherwise it waits until the last such
session disconnects.
"""

from __future__ import annotations

from typing import Optional

import httpx

from precache.cache import CacheStore
from precache.client import AsyncClient
from precache.models import LifecyclePhase, WorkerConfig
from precache.output import get_output
from precache.worker.events import ActivateEvent, FetchEvent, InstallEvent
from precache.worker.service import Worker


class Registration:
    """Tracks the active and waiting workers and which worker controls each session.

    Args:
        store: The shared store.
        client: Network client bound to the serving origin.

    Example::

        registration = Registration(store, client)
        await registration.register(config.worker)
        registration.connect("tab-1")
        answer = await registration.dispatch_fetch(
            FetchEvent("GET", "/about/", navigation=True, client_id="tab-1")
        )
    """

    def __init__(self, store: CacheStore, client: AsyncClient) -> None:
        self._store = store
        self._client = client
        self.active: Optional[Worker] = None
        self.waiting: Optional[Worker] = None
        self._controllers: dict[str, Optional[Worker]] = {}

    # ------------------------------------------------------------------ #
    # Versions
    # ------------------------------------------------------------------ #

    async def register(self, config: WorkerConfig) -> Worker:
        """Install a new worker version and activate it when allowed.

        Raises:
            InstallFailure: If install fails.  The active worker, if any,
                keeps serving.
        """
        worker = Worker(config, self._store, self._client)
        await worker.dispatch(InstallEvent())

        if self.waiting is not None:
            self.waiting.retire()
            self.waiting = None

        if self.active is None or worker.skip_waiting or not self.sessions_of(self.active):
            await self.activate(worker)
        else:
            get_output().info(
                f"{worker.namespace} installed, waiting for "
                f"{len(self.sessions_of(self.active))} session(s) of {self.active.namespace}"
            )
            self.waiting = worker
        return worker

    async def restore(self, config: WorkerConfig) -> Worker:
        """Make an already installed version active without purging anything."""
        worker = Worker(config, self._store, self._client)
        await worker.restore(LifecyclePhase.ACTIVATED)
        self._claim(worker)
        return worker

    async def activate(self, worker: Worker) -> None:
        """Activate an installed *worker*; stale namespaces are purged before it claims sessions."""
        await worker.dispatch(ActivateEvent(claim=lambda: self._claim(worker)))

    def _claim(self, worker: Worker) -> None:
        previous = self.active
        if previous is not None and previous is not worker:
            previous.retire()
        if self.waiting is worker:
            self.waiting = None
        self.active = worker
        for client_id in self._controllers:
            self._controllers[client_id] = worker

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    def connect(self, client_id: str) -> None:
        """Open a session; it is controlled by the active worker, if any."""
        self._controllers[client_id] = self.active

    async def disconnect(self, client_id: str) -> None:
        """Close a session, promoting the waiting worker once the old one is unused."""
        self._controllers.pop(client_id, None)
        if self.waiting is not None and (
            self.active is None or not self.sessions_of(self.active)
        ):
            await self.activate(self.waiting)

    def sessions_of(self, worker: Worker) -> list[str]:
        return [cid for cid, ctrl in self._controllers.items() if ctrl is worker]

    def controller_of(self, client_id: str) -> Optional[Worker]:
        return self._controllers.get(client_id)

    # ------------------------------------------------------------------ #
    # Traffic
    # ------------------------------------------------------------------ #

    async def dispatch_fetch(self, event: FetchEvent) -> Optional[httpx.Response]:
        """Route *event* to its controlling worker.

        Events from a known session go to that session's controller (which
        may be none); events without a session go to the active worker.

        Returns:
            The answer, or ``None`` to pass the request through.  An
            abandoned event also yields ``None``; it is not routed at all
            when abandoned before dispatch, and callers must not resend it.
        """
        if event.abandoned:
            return None
        if event.client_id is not None and event.client_id in self._controllers:
            worker = self._controllers[event.client_id]
        else:
            worker = self.active
        if worker is None:
            return None
        return await worker.dispatch(event)

    async def drain(self) -> None:
        """Wait for background writes of every known worker."""
        for worker in {w for w in (self.active, self.waiting, *self._controllers.values()) if w}:
            await worker.drain()
