"""Typed messages delivered to a :class:`~precache.worker.service.Worker`.

Each lifecycle or traffic event is a small dataclass.  The worker
dispatches it to the handler for its current phase:

* :class:`InstallEvent` -- precache the static assets.
* :class:`ActivateEvent` -- purge stale namespaces, then claim clients.
* :class:`FetchEvent` -- one outbound request from a page.

A :class:`FetchEvent` also carries the lifetime of the work it triggers.
Background steps (the write-back into the store) are registered through
:meth:`FetchEvent.wait_until`, which keeps a strong reference to the task
so it is never dropped mid-flight; :meth:`FetchEvent.settled` awaits them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional


@dataclass
class InstallEvent:
    """Ask the worker to populate its namespace."""


@dataclass
class ActivateEvent:
    """Ask the worker to purge stale namespaces and take control.

    Attributes:
        claim: Called once the purge has finished, to route every client
            session to the activating worker.
    """

    claim: Optional[Callable[[], None]] = None


@dataclass
class FetchEvent:
    """One outbound request.

    Attributes:
        method: HTTP method.
        url: Absolute URL or a path relative to the serving origin.
        navigation: ``True`` for a full page load.  Only navigations get
            the offline page when both store and network fail.
        client_id: The page session that issued the request, if known.
        headers: Request headers, consulted for ``Vary`` matching.
    """

    method: str
    url: str
    navigation: bool = False
    client_id: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, repr=False)
    _abandoned: bool = field(default=False, repr=False)

    def wait_until(self, work: Awaitable[Any]) -> asyncio.Task[Any]:
        """Extend the event's lifetime to cover *work*."""
        task = asyncio.ensure_future(work)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> set[asyncio.Task[Any]]:
        return set(self._tasks)

    def abandon(self) -> None:
        """Mark the event as no longer wanted (e.g. the navigation was aborted).

        The interceptor still finishes its work but discards the answer and
        returns ``None``, like a pass-through; check :attr:`abandoned` before
        sending the request anywhere else.
        """
        self._abandoned = True

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    async def settled(self) -> None:
        """Wait for every task registered with :meth:`wait_until`."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
