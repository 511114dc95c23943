"""Shared test fixtures for precache.

Provides an in-memory site served through :class:`httpx.MockTransport`,
isolated config and cache directories, a namespace store, output state
management, and a CLI runner.  These fixtures are automatically discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import httpx
import pytest

from precache.cache import CacheStore
from precache.models import WorkerConfig
from precache.output import OutputFormat, OutputManager, reset_output, set_output


ORIGIN = "https://blog.example.com"

ASSETS = ["/", "/offline.html", "/favicon.png", "/img/avatar.jpg"]


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake site
# ---------------------------------------------------------------------------


class FakeSite:
    """A programmable origin for :class:`httpx.MockTransport`.

    ``pages`` maps a path to ``(status, headers, body)``.  Paths listed in
    ``down`` raise :class:`httpx.ConnectError`; ``offline = True`` makes
    every request fail.  Every request that reaches the site is recorded
    in ``requests``.
    """

    def __init__(self) -> None:
        self.pages: dict[str, tuple[int, dict[str, str], bytes]] = {
            "/": (200, {"content-type": "text/html"}, b"<h1>Home</h1>"),
            "/offline.html": (200, {"content-type": "text/html"}, b"<h1>You are offline</h1>"),
            "/favicon.png": (200, {"content-type": "image/png"}, b"\x89PNG-favicon"),
            "/img/avatar.jpg": (200, {"content-type": "image/jpeg"}, b"\xff\xd8avatar"),
            "/about/": (200, {"content-type": "text/html"}, b"<h1>About</h1>"),
        }
        self.down: set[str] = set()
        self.offline = False
        self.requests: list[httpx.Request] = []
        self.on_request: Optional[Callable[[httpx.Request], None]] = None

    def set_page(
        self,
        path: str,
        body: bytes,
        status: int = 200,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.pages[path] = (status, {"content-type": "text/html", **(headers or {})}, body)

    def hits(self, path: str, method: str = "GET") -> int:
        return sum(1 for r in self.requests if r.url.path == path and r.method == method)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        if self.offline or request.url.path in self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.method not in ("GET", "HEAD"):
            return httpx.Response(201, json={"ok": True})
        status, headers, body = self.pages.get(
            request.url.path, (404, {"content-type": "text/plain"}, b"Not Found")
        )
        return httpx.Response(status, headers=headers, content=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def site() -> FakeSite:
    """A fresh fake origin serving a handful of static pages."""
    return FakeSite()


@pytest.fixture
def worker_config() -> Callable[..., WorkerConfig]:
    """Factory for a :class:`WorkerConfig` bound to the fake origin."""

    def _make(version: str = "v1", **overrides) -> WorkerConfig:
        data = {
            "origin": ORIGIN,
            "version": version,
            "static_assets": list(ASSETS),
        }
        data.update(overrides)
        return WorkerConfig(**data)

    return _make


# ---------------------------------------------------------------------------
# Store fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> CacheStore:
    """A namespace store rooted in a temporary directory."""
    cache_store = CacheStore(tmp_path / "store")
    yield cache_store
    cache_store.close()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all PRECACHE_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("precache.config._is_xdg_platform", lambda: True)

    for var in ["PRECACHE_ORIGIN", "PRECACHE_VERSION"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def plain_output() -> OutputManager:
    """Install a PLAIN-format, colourless OutputManager that keeps diagnostics."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
