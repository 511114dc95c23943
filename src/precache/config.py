"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.precache/`` on macOS and Windows.  The cache directory is the root
  of the namespace store; the data directory holds crash logs.
* **Global config** -- a single :class:`~precache.models.GlobalConfig` JSON
  file holding the worker, request, and output settings.
* **Project config** -- ``./precache.json`` next to the site sources may
  override the ``worker`` section (typically ``origin`` and ``version``).
* **Precedence resolution** -- :func:`resolve_config` layers CLI flags,
  environment variables, the asset manifest, project config, and global
  config into the effective configuration.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from precache.exceptions import ConfigError
from precache.models import GlobalConfig, WorkerConfig

_APP_NAME = "precache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "precache.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/precache/`` (default ``~/.config/precache/``).
    On macOS/Windows: ``~/.precache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory (the namespace store root), creating it if necessary.

    Deleting it is equivalent to purging every namespace.

    On Linux/BSD: ``$XDG_CACHE_HOME/precache/`` (default ``~/.cache/precache/``).
    On macOS/Windows: ``~/.precache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/precache/`` (default ``~/.local/share/precache/``).
    On macOS/Windows: ``~/.precache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration.

    Returns:
        The deserialised :class:`~precache.models.GlobalConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load ``./precache.json`` from the working directory.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


# --- Precedence resolution ---


def resolve_config(
    cli_origin: Optional[str] = None,
    cli_version: Optional[str] = None,
    cli_manifest: Optional[str] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_origin``, ``cli_version``, ``cli_manifest``)
        2. Environment variables (``PRECACHE_ORIGIN``, ``PRECACHE_VERSION``)
        3. Asset manifest (``assets``, ``version``, ``offline_page``)
        4. Project config (``./precache.json``, ``worker`` keys)
        5. User config (``~/.config/precache/config.json``)
        6. Defaults

    Raises:
        ConfigError: If any layer is invalid.
        ManifestError: If the manifest cannot be loaded.
    """
    config = load_global_config()

    project = load_project_config()
    if project is not None:
        worker_data = config.worker.model_dump()
        worker_data.update(project.get("worker", project))
        try:
            config.worker = WorkerConfig.model_validate(worker_data)
        except ValueError as exc:
            raise ConfigError(f"Invalid worker settings in project config: {exc}") from exc

    if cli_manifest is not None:
        config.worker.manifest = cli_manifest
    if config.worker.manifest:
        from precache.manifest import load_manifest

        manifest = load_manifest(config.worker.manifest)
        config.worker.static_assets = manifest.assets
        if manifest.version:
            config.worker.version = manifest.version
        if manifest.offline_page:
            config.worker.offline_page = manifest.offline_page

    env_origin = os.environ.get("PRECACHE_ORIGIN")
    env_version = os.environ.get("PRECACHE_VERSION")
    if cli_origin is not None:
        config.worker.origin = cli_origin
    elif env_origin:
        config.worker.origin = env_origin
    if cli_version is not None:
        config.worker.version = cli_version
    elif env_version:
        config.worker.version = env_version

    return config


def require_origin(config: GlobalConfig) -> str:
    """Return the configured origin or raise :class:`ConfigError`."""
    origin = config.worker.origin
    if not origin:
        raise ConfigError(
            "No origin configured. Pass --origin, set PRECACHE_ORIGIN, "
            "or run: precache config set worker.origin https://example.com"
        )
    return origin.rstrip("/")
