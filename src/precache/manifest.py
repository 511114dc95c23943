"""Load the static asset manifest from a local JSON or YAML file.

A manifest is either a bare list of absolute paths::

    ["/", "/offline.html", "/favicon.png"]

or a mapping that may also pin the version tag and the offline page::

    version: v3
    offline_page: /offline.html
    assets:
      - /
      - /offline.html
      - /img/avatar.jpg

The resulting :class:`~precache.models.AssetManifest` is folded into the
worker configuration by :func:`~precache.config.resolve_config`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from precache.exceptions import ManifestError
from precache.models import AssetManifest


def load_manifest(path: str) -> AssetManifest:
    """Load and validate a manifest file.

    Args:
        path: Path to a ``.json``, ``.yaml`` or ``.yml`` file.  Other
            extensions fall back to content-based detection.

    Returns:
        The parsed :class:`~precache.models.AssetManifest` with duplicate
        paths removed (first occurrence wins).

    Raises:
        ManifestError: If the file is missing, unparsable, or lists a
            relative or non-string path.
    """
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise ManifestError(f"Manifest file not found: {path}")

    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Failed to read manifest {path}: {exc}") from exc

    if not content.strip():
        raise ManifestError(f"Manifest file is empty: {path}")

    suffix = file_path.suffix.lower()
    hint = ""
    if suffix == ".json":
        hint = "json"
    elif suffix in (".yaml", ".yml"):
        hint = "yaml"

    return parse_manifest(_parse_content(content, hint=hint))


def parse_manifest(data: Any) -> AssetManifest:
    """Validate an already-decoded manifest document."""
    if isinstance(data, list):
        data = {"assets": data}
    if not isinstance(data, dict):
        raise ManifestError(
            f"Manifest must be a list or an object (got {type(data).__name__})"
        )

    assets = data.get("assets")
    if not isinstance(assets, list) or not assets:
        raise ManifestError("Manifest must declare a non-empty 'assets' list")

    seen: set[str] = set()
    ordered: list[str] = []
    for item in assets:
        if not isinstance(item, str) or not item.startswith("/"):
            raise ManifestError(f"Asset paths must be absolute strings, got {item!r}")
        if item not in seen:
            seen.add(item)
            ordered.append(item)

    offline_page = data.get("offline_page")
    if offline_page is not None and (
        not isinstance(offline_page, str) or not offline_page.startswith("/")
    ):
        raise ManifestError(f"offline_page must be an absolute path, got {offline_page!r}")

    version = data.get("version")
    return AssetManifest(
        assets=ordered,
        version=str(version) if version is not None else None,
        offline_page=offline_page,
    )


def _parse_content(content: str, hint: str = "") -> Any:
    """Parse content as JSON or YAML.

    JSON is tried first unless the hint says YAML; valid JSON is also valid
    YAML but the JSON parser gives sharper errors.
    """
    json_error: Exception | None = None

    if hint != "yaml":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            json_error = exc
            if hint == "json":
                raise ManifestError(f"Invalid JSON manifest: {exc}") from exc

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = "Failed to parse manifest as JSON or YAML"
        if json_error:
            msg += f"\n  JSON error: {json_error}"
        msg += f"\n  YAML error: {exc}"
        raise ManifestError(msg) from exc
