"""Wiretap configuration.

WiretapConfig is the session configuration object, frozen after creation.
Out-of-range sizes are clamped rather than rejected; values of the wrong
type raise ``ConfigError``.

``build_config()`` is what host-facing entry points use: a field that does
not validate is reported once and left at its default instead.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from wiretap._errors import ConfigError
from wiretap.banner import print_warning
from wiretap.capture.policy import DEFAULT_MIN_TRUNCATE_BYTES, normalize_headers

DEFAULT_REDACT_HEADERS: tuple[str, ...] = ("authorization", "cookie", "set-cookie")


@dataclass(frozen=True, slots=True)
class WiretapConfig:
    """Configuration for a capture session.

    Attributes:
        host: Bind address for the observer server.
        port: Bind port for the observer server (0 = any free port).
        max_logs: Log history capacity.
        max_requests: Network history capacity.
        truncate_body_bytes: Initial body truncation limit in bytes.
        min_truncate_body_bytes: Floor for every truncation limit, including
            limits set later by observers.
        capture_request_bodies: Record request bodies initially.
        capture_response_bodies: Record response bodies initially.
        redact_headers: Header names whose values are redacted.  Stored
            lower-cased and trimmed, blanks dropped.
        capture_logging: Install the ``logging`` capture source.
        capture_streams: Install the stdout/stderr capture source.
        capture_http: Install the ``http.client`` capture source.
        enabled: When False, starting a session installs nothing.
        banner: Print the startup banner to stderr.
        config_path: Config file the policy was loaded from, if any.
        watch_config: Re-apply policy fields when ``config_path`` changes.

    """

    host: str = "127.0.0.1"
    port: int = 3001
    max_logs: int = 10_000
    max_requests: int = 5_000
    truncate_body_bytes: int = 1_000_000
    min_truncate_body_bytes: int = DEFAULT_MIN_TRUNCATE_BYTES
    capture_request_bodies: bool = True
    capture_response_bodies: bool = True
    redact_headers: tuple[str, ...] = field(default=DEFAULT_REDACT_HEADERS)
    capture_logging: bool = True
    capture_streams: bool = True
    capture_http: bool = True
    enabled: bool = True
    banner: bool = True
    config_path: Path | None = None
    watch_config: bool = False

    def __post_init__(self) -> None:
        for name in ("port", "max_logs", "max_requests", "truncate_body_bytes",
                     "min_truncate_body_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                msg = f"{name} must be an integer, got {value!r}"
                raise ConfigError(msg)

        if not 0 <= self.port <= 65535:
            msg = f"port must be between 0 and 65535, got {self.port}"
            raise ConfigError(msg)

        if isinstance(self.redact_headers, str):
            msg = "redact_headers must be a list of header names, not a string"
            raise ConfigError(msg)

        minimum = max(1, self.min_truncate_body_bytes)
        object.__setattr__(self, "min_truncate_body_bytes", minimum)
        object.__setattr__(self, "max_logs", max(1, self.max_logs))
        object.__setattr__(self, "max_requests", max(1, self.max_requests))
        object.__setattr__(self, "truncate_body_bytes", max(minimum, self.truncate_body_bytes))
        object.__setattr__(self, "redact_headers", normalize_headers(self.redact_headers))
        if self.config_path is not None and not isinstance(self.config_path, Path):
            object.__setattr__(self, "config_path", Path(self.config_path))

    @property
    def url(self) -> str:
        """WebSocket URL observers connect to."""
        return f"ws://{self.host}:{self.port}"


def build_config(
    values: Mapping[str, Any], base: WiretapConfig | None = None
) -> WiretapConfig:
    """Build a WiretapConfig from *values* on top of *base*.

    Each field is checked on its own against the defaults, so one bad value
    never discards the good ones.  Dropped fields are reported through
    ``print_warning`` and keep the value from *base* (or the default).

    """
    accepted: dict[str, Any] = {}
    if base is not None:
        accepted = {f.name: getattr(base, f.name) for f in fields(base)}
    for name, value in values.items():
        try:
            WiretapConfig(**{name: value})
        except (ConfigError, TypeError, ValueError) as exc:
            print_warning(f"ignoring config {name}={value!r}: {exc}")
            continue
        accepted[name] = value
    return WiretapConfig(**accepted)
