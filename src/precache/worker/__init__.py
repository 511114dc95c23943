"""Worker versions: lifecycle, request interception, and fallback.

* :class:`Worker` -- one version; dispatches typed events by phase.
* :class:`Registration` -- active/waiting versions and client sessions.
* :class:`LifecycleController` -- install and activation (purge + claim).
* :class:`FetchInterceptor` -- per-request store/network/fallback policy.
* :class:`FallbackProvider` -- the precached offline page.
"""

from precache.worker.events import ActivateEvent, FetchEvent, InstallEvent
from precache.worker.fallback import FallbackProvider
from precache.worker.interceptor import FetchInterceptor
from precache.worker.lifecycle import LifecycleController
from precache.worker.registration import Registration
from precache.worker.service import Worker

__all__ = [
    "ActivateEvent",
    "FallbackProvider",
    "FetchEvent",
    "FetchInterceptor",
    "InstallEvent",
    "LifecycleController",
    "Registration",
    "Worker",
]
