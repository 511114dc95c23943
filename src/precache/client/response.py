"""Conversions between :class:`httpx.Response` answers and stored entries.

Answers produced by the worker are plain :class:`httpx.Response` objects,
whether they came from the network, from the store, or were synthesised.
This module captures a network response into a
:class:`~precache.models.CacheEntry`, rebuilds an answer from an entry,
builds the synthetic ``503 Offline`` answer, and renders an answer through
the output system for the CLI.
"""

from __future__ import annotations

from typing import Any

import httpx

from precache.models import CacheEntry, RequestIdentity
from precache.output import get_output

# httpx has already decoded the body; these describe the wire form only.
_WIRE_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding", "connection"})

OFFLINE_BODY = b"Offline"


def entry_from_response(key: RequestIdentity, response: httpx.Response) -> CacheEntry:
    """Capture a fully read response as a :class:`~precache.models.CacheEntry`.

    The stored copy is independent of *response*, which can still be handed
    to the caller.
    """
    headers = {
        name.lower(): value
        for name, value in response.headers.items()
        if name.lower() not in _WIRE_HEADERS
    }
    return CacheEntry(
        key=key,
        status=response.status_code,
        headers=headers,
        body=bytes(response.content),
    )


def response_from_entry(entry: CacheEntry) -> httpx.Response:
    """Rebuild an answer from a stored entry."""
    return httpx.Response(
        status_code=entry.status,
        headers=entry.headers,
        content=entry.body,
        request=httpx.Request(entry.key.method, entry.key.url),
    )


def offline_response(method: str = "GET", url: str | None = None) -> httpx.Response:
    """Return the synthetic ``503 Service Unavailable`` answer with a plain-text body."""
    request = httpx.Request(method, url) if url else None
    return httpx.Response(
        status_code=503,
        headers={"Content-Type": "text/plain"},
        content=OFFLINE_BODY,
        request=request,
    )


def format_answer(response: httpx.Response) -> None:
    """Print an answer: status line to stderr, body to stdout.

    Binary bodies (images, fonts) are summarised on stderr instead of being
    dumped to the terminal.
    """
    output = get_output()
    output.info(f"HTTP {response.status_code} {response.reason_phrase or ''}".rstrip())

    content_type = response.headers.get("content-type", "")
    data = extract_answer_data(response)
    if data is None:
        return
    if isinstance(data, bytes):
        output.info(f"<{len(data)} bytes of {content_type or 'binary data'}>")
        return
    output.format_response(data, content_type)


def extract_answer_data(response: httpx.Response) -> Any:
    """Decode an answer body for display.

    Returns:
        A JSON-decoded object for JSON bodies, text for textual bodies, the
        raw bytes for anything else, or ``None`` for an empty body.
    """
    if not response.content:
        return None

    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    if content_type.startswith("text/") or "json" in content_type or "xml" in content_type:
        return response.text
    try:
        return response.content.decode("utf-8")
    except UnicodeDecodeError:
        return response.content
