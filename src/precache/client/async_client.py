"""Asynchronous network client used by the worker.

This module provides :class:`AsyncClient`, a thin wrapper around
:class:`httpx.AsyncClient` bound to one serving origin.  It resolves
relative request URLs against the origin, optionally bypasses HTTP caches
(the install-time ``cache: reload`` behaviour), classifies responses as
``basic``/``cors``/``opaque``, and maps transport errors to
:class:`~precache.exceptions.NetworkFailure`.

Nothing is retried: a failed fetch is reported immediately so the caller
can fall back to the offline page or the synthetic 503 answer.
"""

from __future__ import annotations

from typing import Optional

import httpx

from precache.exceptions import NetworkFailure
from precache.models import RequestConfig, ResponseType
from precache.output import get_output

BYPASS_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}
"""Headers sent on install-time fetches so intermediaries revalidate."""


def origin_of(url: str | httpx.URL) -> str:
    """Return ``scheme://host[:port]`` for *url* (default ports omitted)."""
    parsed = httpx.URL(str(url))
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin = f"{origin}:{parsed.port}"
    return origin


class AsyncClient:
    """Origin-bound asynchronous HTTP client.

    Must be used as an async context manager.

    Args:
        origin: The serving origin, e.g. ``https://example.com``.
        config: Timeout and SSL settings.
        transport: Optional transport override (tests pass an
            :class:`httpx.MockTransport`).

    Example::

        async with AsyncClient("https://example.com", RequestConfig()) as client:
            response = await client.fetch("GET", "/about/")
    """

    def __init__(
        self,
        origin: str,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._origin = origin_of(origin)
        self._config = config or RequestConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def origin(self) -> str:
        return self._origin

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        self._client = httpx.AsyncClient(
            base_url=self._origin,
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # URL helpers
    # ------------------------------------------------------------------ #

    def resolve(self, url: str) -> str:
        """Resolve *url* against the origin and drop any fragment."""
        absolute = httpx.URL(self._origin).join(url)
        return str(absolute).split("#", 1)[0]

    def is_same_origin(self, url: str) -> bool:
        return origin_of(self.resolve(url)) == self._origin

    def classify(self, response: httpx.Response) -> ResponseType:
        """Classify *response* by the origin of its final URL.

        A response whose final URL (after redirects) is on the serving
        origin is ``basic``.  A cross-origin response is ``cors`` when it
        carries ``Access-Control-Allow-Origin``, otherwise ``opaque``.
        """
        try:
            final_url = response.request.url
        except RuntimeError:
            # Synthetic responses carry no request.
            return ResponseType.BASIC
        if origin_of(final_url) == self._origin:
            return ResponseType.BASIC
        if "access-control-allow-origin" in response.headers:
            return ResponseType.CORS
        return ResponseType.OPAQUE

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def fetch(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        bypass_cache: bool = False,
    ) -> httpx.Response:
        """Issue one request and return the fully read response.

        Args:
            method: HTTP method.
            url: Absolute URL or path relative to the origin.
            headers: Extra request headers.
            bypass_cache: Send ``Cache-Control: no-cache`` so the asset is
                fetched fresh rather than from an intermediary cache.

        Returns:
            The :class:`httpx.Response`, whatever its status code.

        Raises:
            NetworkFailure: On connection, DNS, or timeout errors.
        """
        assert self._client is not None, "Client not initialised -- use as async context manager"

        merged: dict[str, str] = dict(headers or {})
        if bypass_cache:
            merged.update(BYPASS_CACHE_HEADERS)

        target = self.resolve(url)
        try:
            response = await self._client.request(method.upper(), target, headers=merged)
        except httpx.RequestError as exc:
            get_output().debug(f"Network error for {method.upper()} {target}: {exc}")
            raise NetworkFailure(f"{method.upper()} {target} failed: {exc}") from exc

        get_output().debug(f"{method.upper()} {target} -> {response.status_code}")
        return response
