"""Canonical Pydantic models shared across all precache modules.

This is the single source of truth for data shapes in the project.  The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`WorkerConfig`, :class:`OutputConfig`,
    :class:`GlobalConfig`, and :class:`AssetManifest`.

**Cache and lifecycle models** -- produced and consumed by the store and the
worker:
    :class:`CacheNamespace`, :class:`RequestIdentity`, :class:`CacheEntry`,
    :class:`ResponseType`, :class:`LifecyclePhase`, and :class:`WorkerState`.
"""

from __future__ import annotations

import enum
import hashlib
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Stored bodies are already decoded, so these never tell two entries apart.
IGNORED_VARY_HEADERS = frozenset({"accept-encoding"})


DEFAULT_STATIC_ASSETS = [
    "/",
    "/offline.html",
    "/favicon.png",
    "/logo.png",
    "/img/avatar.jpg",
    "/img/icons/icon-192.png",
    "/img/icons/icon-512.png",
    "/manifest.json",
]
"""Assets precached by a worker when no manifest overrides them."""


# --- Configuration ---


class RequestConfig(BaseModel):
    """Network settings applied to every fetch issued by a worker.

    There is deliberately no retry count: failed fetches degrade to the
    fallback path instead of being retried.
    """

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class WorkerConfig(BaseModel):
    """Settings describing one deployable worker version.

    ``cache_prefix`` and ``version`` combine into the namespace name
    (``quang-hugo-v1`` with the defaults).  Bumping ``version`` is the only
    supported way to invalidate every cached entry.
    """

    origin: Optional[str] = Field(
        default=None, description="Serving origin, e.g. https://example.com"
    )
    cache_prefix: str = Field(default="quang-hugo", description="Namespace name prefix")
    version: str = Field(default="v1", description="Version tag embedded in the namespace name")
    static_assets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STATIC_ASSETS),
        description="Absolute paths fetched and cached at install time",
    )
    offline_page: str = Field(
        default="/offline.html", description="Document served when a navigation fails"
    )
    skip_waiting: bool = Field(
        default=True,
        description="Activate immediately instead of waiting for old sessions to close",
    )
    manifest: Optional[str] = Field(
        default=None, description="JSON/YAML manifest overriding static_assets"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto",
        description="Format used when neither --json nor --plain is given",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/precache/config.json``.

    Loaded and saved by :func:`~precache.config.load_global_config` and
    :func:`~precache.config.save_global_config`.  See
    :func:`~precache.config.resolve_config` for the full precedence chain.
    """

    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


class AssetManifest(BaseModel):
    """Parsed static asset manifest produced by :func:`~precache.manifest.load_manifest`."""

    assets: list[str] = Field(default_factory=list)
    version: Optional[str] = None
    offline_page: Optional[str] = None


# --- Cache and lifecycle ---


class CacheNamespace(BaseModel):
    """A version-scoped bucket of cache entries.

    Example::

        CacheNamespace(prefix="quang-hugo", version="v2").name  # "quang-hugo-v2"
    """

    prefix: str
    version: str

    @property
    def name(self) -> str:
        return f"{self.prefix}-{self.version}"


class RequestIdentity(BaseModel):
    """Normalised identity of a request, used as the cache key.

    ``method`` is upper-cased and ``url`` is absolute with any fragment
    removed.  ``vary`` holds lower-cased request header values: for a lookup
    it carries every header of the incoming request, for a stored entry only
    the headers named by the response's ``Vary`` header.

    Entries are stored under :meth:`digest`, so a namespace holds at most one
    entry per method and URL; :meth:`matches` then applies the vary check.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    vary: dict[str, str] = Field(default_factory=dict)

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @field_validator("url")
    @classmethod
    def _strip_fragment(cls, value: str) -> str:
        return value.split("#", 1)[0]

    @field_validator("vary")
    @classmethod
    def _lower_vary(cls, value: dict[str, str]) -> dict[str, str]:
        return {k.lower(): v for k, v in value.items()}

    def digest(self) -> str:
        """Return the SHA-256 storage key for this identity's method and URL."""
        raw = f"{self.method}|{self.url}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def select_vary(self, vary_header: Optional[str]) -> RequestIdentity:
        """Return a copy keeping only the request headers named in *vary_header*.

        ``Accept-Encoding`` is dropped: the stored body is decoded whatever
        encoding the network used.
        """
        names = [n.strip().lower() for n in (vary_header or "").split(",") if n.strip()]
        names = [n for n in names if n not in IGNORED_VARY_HEADERS]
        selected = {name: self.vary.get(name, "") for name in names}
        return RequestIdentity(method=self.method, url=self.url, vary=selected)

    def matches(self, request: RequestIdentity) -> bool:
        """Whether this stored identity answers *request*."""
        if self.method != request.method or self.url != request.url:
            return False
        return all(
            request.vary.get(name, "") == value
            for name, value in self.vary.items()
            if name not in IGNORED_VARY_HEADERS
        )


class CacheEntry(BaseModel):
    """A captured response stored under a :class:`RequestIdentity`."""

    key: RequestIdentity
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""


class ResponseType(str, enum.Enum):
    """Classification of a network response relative to the serving origin.

    Only ``BASIC`` responses are eligible for write-back.
    """

    BASIC = "basic"
    CORS = "cors"
    OPAQUE = "opaque"


class LifecyclePhase(str, enum.Enum):
    """Phases a worker version moves through.

    ``PARSED -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVATED``.  A
    version whose install failed, or that was superseded, ends ``REDUNDANT``.
    """

    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


class WorkerState(BaseModel):
    """Explicit per-version state: the current namespace and lifecycle phase.

    Initialised when the worker is constructed; the namespace is torn down
    only by a later version's activation purge.
    """

    namespace: CacheNamespace
    phase: LifecyclePhase = LifecyclePhase.PARSED
