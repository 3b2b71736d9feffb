"""Load WiretapConfig from config files and the environment.

Sources, lowest precedence first:

1. ``WiretapConfig`` defaults
2. ``wiretap.yaml`` / ``wiretap.yml``, else ``wiretap.toml``, else the
   ``[tool.wiretap]`` table of ``pyproject.toml``
3. ``WIRETAP_*`` environment variables
4. keyword overrides

Unreadable files and unparseable values are skipped, never fatal: the
loader runs during host startup.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from wiretap._errors import ConfigError
from wiretap.config import WiretapConfig, build_config

CONFIG_FILENAMES = ("wiretap.yaml", "wiretap.yml", "wiretap.toml")

_INT_FIELDS = frozenset({
    "port", "max_logs", "max_requests", "truncate_body_bytes", "min_truncate_body_bytes",
})
_BOOL_FIELDS = frozenset({
    "capture_request_bodies", "capture_response_bodies", "capture_logging",
    "capture_streams", "capture_http", "enabled", "banner", "watch_config",
})
_KNOWN_FIELDS = frozenset(f.name for f in fields(WiretapConfig))

# Environment variable -> config field.
_ENV_FIELDS: dict[str, str] = {
    "WIRETAP_HOST": "host",
    "WIRETAP_PORT": "port",
    "WIRETAP_MAX_LOGS": "max_logs",
    "WIRETAP_MAX_REQUESTS": "max_requests",
    "WIRETAP_TRUNCATE_BODY_BYTES": "truncate_body_bytes",
    "WIRETAP_CAPTURE_REQUEST_BODIES": "capture_request_bodies",
    "WIRETAP_CAPTURE_RESPONSE_BODIES": "capture_response_bodies",
    "WIRETAP_REDACT_HEADERS": "redact_headers",
    "WIRETAP_ENABLED": "enabled",
    "WIRETAP_BANNER": "banner",
}

# Config field -> wire name of the matching capture policy field.
POLICY_FIELDS: dict[str, str] = {
    "truncate_body_bytes": "truncateBodyBytes",
    "capture_request_bodies": "captureRequestBodies",
    "capture_response_bodies": "captureResponseBodies",
    "redact_headers": "redactHeaders",
}

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def load_config(
    root: Path | str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    config_path: Path | str | None = None,
    **overrides: Any,
) -> WiretapConfig:
    """Build a WiretapConfig from files in *root*, the environment and overrides.

    Args:
        root: Directory searched for config files (default: cwd).
        environ: Environment mapping (default: ``os.environ``).
        config_path: Explicit config file; must exist.
        **overrides: Field values that win over everything else.

    Raises:
        ConfigError: If *config_path* is given but missing.  Bad field values
            from any source are dropped with a warning instead.

    """
    root_path = Path(root) if root is not None else Path.cwd()
    env = os.environ if environ is None else environ

    if config_path is not None:
        path: Path | None = Path(config_path)
        if not path.is_file():
            msg = f"config file not found: {path}"
            raise ConfigError(msg)
    else:
        path = find_config_file(root_path)

    merged: dict[str, Any] = {}
    if path is not None:
        merged.update(read_config_file(path))
        merged["config_path"] = path.resolve()
    merged.update(read_environment(env))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return build_config(merged)


def find_config_file(root: Path) -> Path | None:
    """Return the first config file present in *root*, if any."""
    for name in CONFIG_FILENAMES:
        path = root / name
        if path.is_file():
            return path
    pyproject = root / "pyproject.toml"
    if pyproject.is_file() and _read_toml(pyproject).get("tool", {}).get("wiretap"):
        return pyproject
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read config fields from a YAML or TOML file.  Empty dict on error."""
    if path.suffix in (".yaml", ".yml"):
        data = _read_yaml(path)
    elif path.name == "pyproject.toml":
        data = _read_toml(path).get("tool", {})
    else:
        data = _read_toml(path)
    return _extract_fields(data)


def read_policy_patch(path: Path) -> dict[str, Any]:
    """Read just the capture policy fields of *path*, keyed by wire name."""
    values = read_config_file(path)
    patch: dict[str, Any] = {}
    for name, wire in POLICY_FIELDS.items():
        if name in values:
            value = values[name]
            patch[wire] = list(value) if isinstance(value, tuple) else value
    return patch


def read_environment(environ: Mapping[str, str]) -> dict[str, Any]:
    """Read config fields from ``WIRETAP_*`` variables.  Bad values are skipped."""
    result: dict[str, Any] = {}
    for var, name in _ENV_FIELDS.items():
        raw = environ.get(var)
        if raw is None or raw.strip() == "":
            continue
        value = _coerce(name, raw)
        if value is not None:
            result[name] = value
    if environ.get("WIRETAP_ENV", "").strip().lower() == "production":
        result["enabled"] = False
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError):
        return {}


def _extract_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Pick known fields from a top-level mapping or its ``wiretap`` table."""
    result: dict[str, Any] = {}
    section = data.get("wiretap")
    sources = [data, section] if isinstance(section, Mapping) else [data]
    for source in sources:
        for key, raw in source.items():
            name = str(key).replace("-", "_")
            if name not in _KNOWN_FIELDS or name == "config_path":
                continue
            value = _coerce(name, raw)
            if value is not None:
                result[name] = value
    return result


def _coerce(name: str, raw: Any) -> Any:
    """Convert *raw* to the field's type, or None if it does not fit."""
    if name in _INT_FIELDS:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            return raw
        if isinstance(raw, str):
            try:
                return int(raw.strip().replace("_", ""))
            except ValueError:
                return None
        return None
    if name in _BOOL_FIELDS:
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
        return None
    if name == "redact_headers":
        if isinstance(raw, str):
            return tuple(part.strip() for part in raw.split(",") if part.strip())
        if isinstance(raw, (list, tuple)):
            return tuple(str(item) for item in raw)
        return None
    if name == "host":
        return raw.strip() if isinstance(raw, str) and raw.strip() else None
    return raw
