"""Broadcast protocol — observer message shapes and inbound parsing.

Outbound messages (server → observer)::

    {"type": "log",     "data": <LogRecord>}
    {"type": "network", "data": <NetworkRecord>}
    {"type": "batch",   "data": {"logs": [...], "requests": [...]}}
    {"type": "status",  "data": {"pausedLogs": bool, "pausedNetwork": bool}}
    {"type": "config",  "data": <capture policy>}
    {"type": "clear",   "target": "logs" | "network" | "all"}

Inbound messages (observer → server)::

    {"type": "clear",   "target": ...}
    {"type": "control", "data": {"pauseLogs"?, "pauseNetwork"?,
                                 "truncateBodyBytes"?, "captureRequestBodies"?,
                                 "captureResponseBodies"?, "redactHeaders"?}}

Anything else inbound parses to None and is ignored.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeAlias

from wiretap.capture.collector import CLEAR_TARGETS
from wiretap.capture.policy import POLICY_KEYS

if TYPE_CHECKING:
    from wiretap._types import ClearTarget, Message
    from wiretap.capture.collector import Notification
    from wiretap.capture.records import LogRecord, NetworkRecord


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


def log_message(record: LogRecord) -> Message:
    return {"type": "log", "data": record.to_dict()}


def network_message(record: NetworkRecord) -> Message:
    return {"type": "network", "data": record.to_dict()}


def batch_message(logs: Iterable[LogRecord], requests: Iterable[NetworkRecord]) -> Message:
    return {
        "type": "batch",
        "data": {
            "logs": [record.to_dict() for record in logs],
            "requests": [record.to_dict() for record in requests],
        },
    }


def status_message(status: Mapping[str, bool]) -> Message:
    return {
        "type": "status",
        "data": {
            "pausedLogs": bool(status.get("pausedLogs", False)),
            "pausedNetwork": bool(status.get("pausedNetwork", False)),
        },
    }


def config_message(policy: Mapping[str, Any]) -> Message:
    return {"type": "config", "data": dict(policy)}


def clear_message(target: ClearTarget) -> Message:
    return {"type": "clear", "target": target}


def from_notification(notification: Notification) -> Message:
    """Translate a collector notification into its wire message."""
    kind = notification.kind
    if kind == "log":
        return log_message(notification.payload)
    if kind == "network":
        return network_message(notification.payload)
    if kind == "clear":
        return clear_message(notification.payload)
    return status_message(notification.payload)


def encode(message: Message) -> str:
    """Serialize a message as single-line JSON text."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClearCommand:
    """Observer asked to clear a buffer."""

    target: ClearTarget


@dataclass(frozen=True, slots=True)
class ControlCommand:
    """Observer asked to pause/resume channels and/or patch the policy.

    Attributes:
        pause_logs: New log pause flag, or None to leave unchanged.
        pause_network: New network pause flag, or None to leave unchanged.
        policy_patch: Policy fields present in the message, unvalidated.

    """

    pause_logs: bool | None = None
    pause_network: bool | None = None
    policy_patch: dict[str, Any] = field(default_factory=dict)

    @property
    def has_policy_update(self) -> bool:
        return bool(self.policy_patch)


Command: TypeAlias = ClearCommand | ControlCommand


def parse_inbound(raw: str | bytes) -> Command | None:
    """Parse an observer message; None for anything malformed or unknown."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(message, dict):
        return None

    kind = message.get("type")
    if kind == "clear":
        target = message.get("target")
        if isinstance(target, str) and target in CLEAR_TARGETS:
            return ClearCommand(target=target)  # type: ignore[arg-type]
        return None

    if kind == "control":
        data = message.get("data")
        if not isinstance(data, dict):
            return None
        pause_logs = data.get("pauseLogs")
        pause_network = data.get("pauseNetwork")
        return ControlCommand(
            pause_logs=pause_logs if isinstance(pause_logs, bool) else None,
            pause_network=pause_network if isinstance(pause_network, bool) else None,
            policy_patch={key: data[key] for key in POLICY_KEYS if key in data},
        )

    return None
