"""Offline document served when a navigation misses the store and the network fails."""

from __future__ import annotations

import logging

import httpx

from precache.cache import CacheStore
from precache.client.response import offline_response, response_from_entry
from precache.exceptions import StoreFailure
from precache.models import RequestIdentity, WorkerState

logger = logging.getLogger(__name__)


class FallbackProvider:
    """Serves the precached offline page by its fixed key.

    The page itself is an ordinary static asset: the lifecycle controller
    caches it at install time.  If it is missing, or the store cannot be
    read, the synthetic ``503 Offline`` answer is returned instead.

    Args:
        state: The owning worker's state (selects the namespace).
        store: The shared store.
        url: Absolute URL of the offline page.
    """

    def __init__(self, state: WorkerState, store: CacheStore, url: str) -> None:
        self._state = state
        self._store = store
        self._key = RequestIdentity(method="GET", url=url)

    @property
    def key(self) -> RequestIdentity:
        return self._key

    async def respond(self) -> httpx.Response:
        try:
            entry = await self._store.match(self._key, namespace=self._state.namespace.name)
        except StoreFailure as exc:
            logger.warning("Offline page lookup failed: %s", exc)
            entry = None
        if entry is None:
            return offline_response("GET", self._key.url)
        return response_from_entry(entry)
