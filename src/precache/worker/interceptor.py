"""Per-request cache policy.

:class:`FetchInterceptor` decides, for every :class:`FetchEvent`, whether to
answer from the current namespace, from the network, or from a fallback:

1. Non-GET requests and cross-origin URLs are passed through untouched
   (``None`` is returned and the store is never consulted).
2. A stored entry for the request identity answers without touching the
   network.
3. Otherwise the request goes to the network.  An eligible response
   (``200`` and ``basic``) is answered and a copy is written back in the
   background; any other response is answered uncached.
4. When the network fails, navigations get the offline page and every
   other request gets a plain-text ``503``.

Store failures never surface: a failed read is a miss, a failed write is
logged and skipped.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from precache.cache import CacheStore, NamespaceHandle
from precache.client import AsyncClient
from precache.client.response import entry_from_response, offline_response, response_from_entry
from precache.exceptions import NetworkFailure, StoreFailure
from precache.models import CacheEntry, RequestIdentity, ResponseType, WorkerState
from precache.output import get_output
from precache.worker.events import FetchEvent
from precache.worker.fallback import FallbackProvider

logger = logging.getLogger(__name__)

CACHEABLE_METHOD = "GET"


class FetchInterceptor:
    """Answers traffic events for one worker version.

    Args:
        state: The owning worker's state; its namespace is the one read and
            written.
        store: The shared store.
        client: Network client bound to the serving origin.
        fallback: Provider of the offline page.
    """

    def __init__(
        self,
        state: WorkerState,
        store: CacheStore,
        client: AsyncClient,
        fallback: FallbackProvider,
    ) -> None:
        self._state = state
        self._store = store
        self._client = client
        self._fallback = fallback

    def intercepts(self, event: FetchEvent) -> bool:
        """Whether *event* is handled at all (same-origin GET)."""
        if event.method.upper() != CACHEABLE_METHOD:
            return False
        return self._client.is_same_origin(event.url)

    async def handle(self, event: FetchEvent) -> Optional[httpx.Response]:
        """Produce an answer for *event*.

        Returns:
            The answer, or ``None``.  ``None`` means pass-through unless
            *event* is :attr:`~precache.worker.events.FetchEvent.abandoned`;
            then the answer was discarded and the request must not be sent
            to the network again.
        """
        if not self.intercepts(event):
            get_output().debug(f"Pass-through: {event.method.upper()} {event.url}")
            return None

        key = RequestIdentity(
            method=CACHEABLE_METHOD,
            url=self._client.resolve(event.url),
            vary=event.headers,
        )
        answer = await self._respond(event, key)
        if event.abandoned:
            get_output().debug(f"Discarding answer for abandoned request {key.url}")
            return None
        return answer

    def is_cacheable(self, response: httpx.Response) -> bool:
        """Eligible responses: status 200, same-origin (``basic``), and not ``Vary: *``."""
        if response.status_code != 200:
            return False
        if self._client.classify(response) is not ResponseType.BASIC:
            return False
        return response.headers.get("vary", "").strip() != "*"

    async def _respond(self, event: FetchEvent, key: RequestIdentity) -> httpx.Response:
        handle = await self._open()
        cached = await self._lookup(handle, key) if handle is not None else None
        if cached is not None:
            get_output().debug(f"Cache hit: {key.url}")
            return response_from_entry(cached)

        try:
            response = await self._client.fetch(CACHEABLE_METHOD, key.url, headers=event.headers)
        except NetworkFailure:
            if event.navigation:
                get_output().debug(f"Offline navigation, serving fallback for {key.url}")
                return await self._fallback.respond()
            return offline_response(CACHEABLE_METHOD, key.url)

        if handle is not None and self.is_cacheable(response):
            stored_key = key.select_vary(response.headers.get("vary"))
            entry = entry_from_response(stored_key, response)
            event.wait_until(self._write_back(handle, stored_key, entry))
        return response

    async def _open(self) -> Optional[NamespaceHandle]:
        try:
            return await self._store.open(self._state.namespace.name)
        except StoreFailure as exc:
            logger.warning("Cannot open namespace %s: %s", self._state.namespace.name, exc)
            return None

    async def _lookup(self, handle: NamespaceHandle, key: RequestIdentity) -> Optional[CacheEntry]:
        try:
            return await self._store.get(handle, key)
        except StoreFailure as exc:
            logger.warning("Cache read failed for %s, treating as miss: %s", key.url, exc)
            return None

    async def _write_back(
        self, handle: NamespaceHandle, key: RequestIdentity, entry: CacheEntry
    ) -> None:
        # The handle was opened before the network round trip; if the
        # namespace was purged meanwhile the write fails instead of
        # recreating it.
        try:
            await self._store.put(handle, key, entry)
        except StoreFailure as exc:
            logger.warning("Cache write skipped for %s: %s", key.url, exc)
