"""Captured event records.

Two record types flow through the collector:

- ``LogRecord``: one emitted log message (logging call or printed line)
- ``NetworkRecord``: one completed or failed outbound HTTP call

Both are frozen dataclasses.  A record is built once by a capture source,
after the event is complete, and never modified afterwards.  ``to_dict()``
produces the JSON wire form used by the broadcast protocol (camelCase keys,
optional fields omitted when absent).

Thread Safety:
    All records are frozen (immutable) and safe to share across threads.

"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from wiretap._types import HttpMethod, LogLevel, NetworkSource

LOG_LEVELS: tuple[LogLevel, ...] = ("log", "info", "warn", "error", "debug")

HTTP_METHODS: frozenset[str] = frozenset(
    {"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"}
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_ms() -> int:
    """Return the current wall clock in integer milliseconds."""
    return time.time_ns() // 1_000_000


def new_id() -> str:
    """Return a fresh unique record identifier."""
    return uuid.uuid4().hex


def normalize_method(method: str | bytes | None) -> HttpMethod:
    """Map a raw request method onto the fixed method set.

    A missing method means GET; anything outside the known set is UNKNOWN.

    """
    if not method:
        return "GET"
    if isinstance(method, bytes):
        method = method.decode("latin-1")
    upper = method.strip().upper()
    if upper in HTTP_METHODS:
        return upper  # type: ignore[return-value]
    return "UNKNOWN"


def safe_stringify(value: Any) -> str:
    """Render a value as text without ever raising."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError):
        try:
            return str(value)
        except Exception:
            return f"<unprintable {type(value).__name__}>"


def message_hash(text: str) -> str:
    """Content hash used by observers to collapse repeated messages.

    djb2 with xor over UTF-16 code units, as an unsigned 32-bit value in
    base 36.  Stable across processes so observers can compare hashes.

    """
    h = 5381
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h * 33) & 0xFFFFFFFF) ^ unit
    return _to_base36(h)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def to_jsonable(value: Any) -> Any:
    """Return *value* if it survives JSON encoding, else its text form."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return safe_stringify(value)
    return value


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LogRecord:
    """One captured log message.

    Attributes:
        id: Unique record identifier.
        timestamp: Wall clock time of emission in milliseconds.
        level: Severity.
        message: Rendered message text.
        args: The original arguments of the log call.
        stack: Captured call stack, only for ``error`` severity.
        hash: Content hash of ``"{level}:{message}"``.

    """

    id: str
    timestamp: int
    level: LogLevel
    message: str
    args: tuple[Any, ...] = ()
    stack: str | None = None
    hash: str = ""

    @classmethod
    def create(
        cls,
        level: LogLevel,
        message: str,
        args: tuple[Any, ...] = (),
        stack: str | None = None,
    ) -> LogRecord:
        """Build a record stamped with a fresh id, the current time and its hash."""
        return cls(
            id=new_id(),
            timestamp=now_ms(),
            level=level,
            message=message,
            args=tuple(args),
            stack=stack if level == "error" else None,
            hash=message_hash(f"{level}:{message}"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "level": self.level,
            "message": self.message,
            "args": [to_jsonable(arg) for arg in self.args],
            "hash": self.hash,
        }
        if self.stack is not None:
            data["stack"] = self.stack
        return data


@dataclass(frozen=True, slots=True)
class Timing:
    """Start and end of a network call, in wall clock milliseconds."""

    start: int
    end: int


@dataclass(frozen=True, slots=True)
class NetworkRecord:
    """One finished outbound HTTP call.

    A status of 0 means the call failed before any response arrived; in
    that case ``error`` carries the failure message.

    Attributes:
        id: Unique record identifier.
        timestamp: Start time in milliseconds.
        method: Normalized HTTP method.
        url: Absolute request URL.
        status: Response status code, 0 on failure.
        status_text: Response reason phrase, ``"Failed"`` on failure.
        duration: Call duration in milliseconds.
        request_headers: Request headers after redaction.
        request_body: Request body after truncation, None when not captured.
        response_headers: Response headers after redaction.
        response_body: Response body after truncation, None when not captured.
        timing: Start/end envelope.
        error: Failure message, only on failure.
        source: Capture mechanism that produced the record.

    """

    id: str
    timestamp: int
    method: HttpMethod
    url: str
    status: int
    status_text: str
    duration: int
    request_headers: dict[str, str] = field(default_factory=dict)
    request_body: str | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    timing: Timing = field(default_factory=lambda: Timing(0, 0))
    error: str | None = None
    source: NetworkSource = "manual"

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "method": self.method,
            "url": self.url,
            "status": self.status,
            "statusText": self.status_text,
            "duration": self.duration,
            "requestHeaders": dict(self.request_headers),
            "responseHeaders": dict(self.response_headers),
            "timing": {"start": self.timing.start, "end": self.timing.end},
            "source": self.source,
        }
        if self.request_body is not None:
            data["requestBody"] = self.request_body
        if self.response_body is not None:
            data["responseBody"] = self.response_body
        if self.error is not None:
            data["error"] = self.error
        return data
