"""Capture policy — the live, remotely mutable capture configuration.

Capture sources consult the policy on every call to decide whether to
record bodies, how far to truncate them, and which headers to redact.
Observers change it at runtime through ``control`` messages; the config
file watcher changes it when the config file is edited.

Thread Safety:
    Reads return a frozen ``PolicySnapshot``; patches are applied under a
    ``threading.Lock``.  Concurrent patches are last-writer-wins per field.

"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

TRUNCATION_MARKER = "... [truncated]"
REDACTED = "[REDACTED]"

DEFAULT_MIN_TRUNCATE_BYTES = 1_000

# Wire names of the fields a patch may carry.
POLICY_KEYS: frozenset[str] = frozenset(
    {"truncateBodyBytes", "captureRequestBodies", "captureResponseBodies", "redactHeaders"}
)


def normalize_headers(names: Iterable[Any]) -> tuple[str, ...]:
    """Trim and lower-case header names, dropping blanks and non-strings."""
    result: list[str] = []
    for name in names:
        if not isinstance(name, str):
            continue
        cleaned = name.strip().lower()
        if cleaned:
            result.append(cleaned)
    return tuple(result)


def truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* UTF-8 bytes, marking the cut.

    Text within the limit is returned unchanged.  Otherwise the longest
    prefix that fits without splitting a character is kept and the
    truncation marker appended.

    """
    encoded = text.encode("utf-8", "surrogatepass")
    if len(encoded) <= limit:
        return text
    prefix = encoded[: max(0, limit)].decode("utf-8", "ignore")
    return prefix + TRUNCATION_MARKER


def redact(headers: Mapping[str, str], blocked: Iterable[str]) -> Mapping[str, str]:
    """Replace blocked header values with the redaction sentinel.

    Matching is case-insensitive.  With nothing blocked the input mapping
    itself is returned.

    """
    blocked_set = {name.lower() for name in blocked}
    if not blocked_set:
        return headers
    return {
        key: REDACTED if key.lower() in blocked_set else value
        for key, value in headers.items()
    }


@dataclass(frozen=True, slots=True)
class PolicySnapshot:
    """Point-in-time view of the capture policy.

    Attributes:
        truncate_body_bytes: Maximum captured body size in bytes.
        capture_request_bodies: Whether request bodies are recorded.
        capture_response_bodies: Whether response bodies are recorded.
        redact_headers: Lower-cased header names whose values are hidden.

    """

    truncate_body_bytes: int
    capture_request_bodies: bool
    capture_response_bodies: bool
    redact_headers: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "truncateBodyBytes": self.truncate_body_bytes,
            "captureRequestBodies": self.capture_request_bodies,
            "captureResponseBodies": self.capture_response_bodies,
            "redactHeaders": list(self.redact_headers),
        }


class CapturePolicy:
    """Shared, mutable capture settings for one session.

    Args:
        truncate_body_bytes: Initial body truncation limit.
        capture_request_bodies: Record request bodies.
        capture_response_bodies: Record response bodies.
        redact_headers: Header names to redact (normalized on entry).
        min_truncate_bytes: Floor applied to every truncation limit.

    """

    __slots__ = ("_lock", "_min_truncate_bytes", "_snapshot")

    def __init__(
        self,
        *,
        truncate_body_bytes: int = 1_000_000,
        capture_request_bodies: bool = True,
        capture_response_bodies: bool = True,
        redact_headers: Iterable[str] = ("authorization", "cookie", "set-cookie"),
        min_truncate_bytes: int = DEFAULT_MIN_TRUNCATE_BYTES,
    ) -> None:
        self._lock = threading.Lock()
        self._min_truncate_bytes = max(1, int(min_truncate_bytes))
        self._snapshot = PolicySnapshot(
            truncate_body_bytes=max(self._min_truncate_bytes, int(truncate_body_bytes)),
            capture_request_bodies=bool(capture_request_bodies),
            capture_response_bodies=bool(capture_response_bodies),
            redact_headers=normalize_headers(redact_headers),
        )

    @property
    def min_truncate_bytes(self) -> int:
        return self._min_truncate_bytes

    def snapshot(self) -> PolicySnapshot:
        """Return the latest applied policy."""
        # Snapshots are immutable; replacing the reference is atomic.
        return self._snapshot

    @property
    def truncate_body_bytes(self) -> int:
        return self._snapshot.truncate_body_bytes

    @property
    def capture_request_bodies(self) -> bool:
        return self._snapshot.capture_request_bodies

    @property
    def capture_response_bodies(self) -> bool:
        return self._snapshot.capture_response_bodies

    @property
    def redact_headers(self) -> tuple[str, ...]:
        return self._snapshot.redact_headers

    def to_dict(self) -> dict[str, Any]:
        return self._snapshot.to_dict()

    def apply_patch(self, patch: Mapping[str, Any]) -> bool:
        """Overwrite the fields present and well-typed in *patch*.

        Keys use the wire names (``truncateBodyBytes``,
        ``captureRequestBodies``, ``captureResponseBodies``,
        ``redactHeaders``).  Ill-typed values are ignored and the prior
        value retained.  ``redactHeaders`` replaces the whole list.

        Returns:
            True if any field changed.

        """
        if not isinstance(patch, Mapping):
            return False

        with self._lock:
            current = self._snapshot
            limit = current.truncate_body_bytes
            capture_req = current.capture_request_bodies
            capture_res = current.capture_response_bodies
            headers = current.redact_headers

            value = patch.get("truncateBodyBytes")
            if _is_positive_finite(value):
                limit = max(self._min_truncate_bytes, math.floor(value))

            value = patch.get("captureRequestBodies")
            if isinstance(value, bool):
                capture_req = value

            value = patch.get("captureResponseBodies")
            if isinstance(value, bool):
                capture_res = value

            value = patch.get("redactHeaders")
            if isinstance(value, (list, tuple)):
                headers = normalize_headers(value)

            updated = PolicySnapshot(
                truncate_body_bytes=limit,
                capture_request_bodies=capture_req,
                capture_response_bodies=capture_res,
                redact_headers=headers,
            )
            if updated == current:
                return False
            self._snapshot = updated
            return True

    def truncate(self, text: str) -> str:
        """Truncate *text* at the current limit."""
        return truncate(text, self._snapshot.truncate_body_bytes)

    def redact(self, headers: Mapping[str, str]) -> Mapping[str, str]:
        """Redact *headers* with the current blocked list."""
        return redact(headers, self._snapshot.redact_headers)


def _is_positive_finite(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0
