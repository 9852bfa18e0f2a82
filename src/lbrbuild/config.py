"""Configuration helpers for lbr-build workspaces.

This module reads the layered ``app-config.json`` documents, validates them
with Pydantic models and provides the JSON and hashing primitives shared by
the planning modules.

Example:
    >>> from lbrbuild.config import utc_now
    >>> utc_now().endswith("Z")
    True
"""

import datetime as dt
import hashlib
import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from . import log as lbr_log
from . import paths
from .errors import ConfigurationError
from .models import BuildConfig


def utc_now() -> str:
    """Return the current UTC timestamp in ISO-8601 format.

    Returns:
        UTC timestamp like ``2026-01-18T12:34:56Z``.

    Example:
        >>> timestamp = utc_now()
        >>> timestamp.endswith("Z")
        True
    """
    now = dt.datetime.now(tz=dt.timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def hash_file(path: Path) -> str:
    """Return the SHA-256 hex digest for a file's contents."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


def load_json(path: Path) -> dict | list | None:
    """Load a JSON file if it exists.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed payload, or ``None`` if the file does not exist.

    Example:
        >>> from pathlib import Path
        >>> load_json(Path("missing.json")) is None
        True
    """
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def write_json(path: Path, payload: dict | list) -> None:
    """Atomically write a JSON payload to disk.

    The payload is written to a sibling temporary file first and moved into
    place, so readers never observe a half-written document.

    Args:
        path: Path to the JSON file to write.
        payload: Dict or list to serialize.

    Returns:
        None.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
            fh.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def merge_payloads(base: dict, overlay: dict) -> dict:
    """Deep-merge ``overlay`` into a copy of ``base``.

    Example:
        >>> merge_payloads({"general": {"a": 1, "b": 2}}, {"general": {"b": 3}})
        {'general': {'a': 1, 'b': 3}}
    """
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_payloads(current, value)
        else:
            merged[key] = value
    return merged


def _read_layer(path: Path) -> dict:
    try:
        payload = load_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"cannot read config at {path}: {exc}",
            recovery_hint="fix or remove the file",
        ) from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"config at {path} must be a JSON object")
    lbr_log.trace(f"config layer loaded path={path}")
    return payload


def parse_build_config(payload: dict, source: Path | str | None = None) -> BuildConfig:
    """Validate a build config payload."""
    try:
        return BuildConfig.model_validate(payload)
    except ValidationError as exc:
        location = f" at {source}" if source else ""
        raise ConfigurationError(f"invalid config{location}: {exc}") from exc


def config_layers(workspace: Path) -> list[Path]:
    """Return config files in increasing precedence order."""
    return [
        paths.installed_config_path(),
        paths.app_config_path(workspace),
        paths.user_app_config_path(workspace),
    ]


def load_build_config(workspace: Path) -> BuildConfig:
    """Load the effective configuration of a workspace.

    Installed defaults are overlaid by the project config, which is overlaid
    by the per-user project config. Missing layers are skipped.

    Args:
        workspace: Workspace root directory.

    Returns:
        Validated ``BuildConfig``.
    """
    payload: dict = {}
    for layer in config_layers(workspace):
        payload = merge_payloads(payload, _read_layer(layer))
    return parse_build_config(payload, source=paths.app_config_path(workspace))
