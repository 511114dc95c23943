"""Network side of the worker.

:class:`AsyncClient` wraps :class:`httpx.AsyncClient` for one serving
origin; :mod:`precache.client.response` converts between network answers
and stored :class:`~precache.models.CacheEntry` objects.

Example::

    from precache.client import AsyncClient

    async with AsyncClient("https://example.com") as client:
        resp = await client.fetch("GET", "/", bypass_cache=True)
"""

from precache.client.async_client import AsyncClient, origin_of

__all__ = ["AsyncClient", "origin_of"]
