"""Capture core — bounded history, capture policy and change notifications.

Quick Start:
    >>> from wiretap.capture import CapturePolicy, EventCollector, LogRecord
    >>> collector = EventCollector(max_logs=100, max_requests=100)
    >>> collector.add_log(LogRecord.create("info", "hello"))
    >>> [r.message for r in collector.get_logs()]
    ['hello']

"""

from wiretap.capture.buffer import RingBuffer
from wiretap.capture.collector import CollectorSnapshot, EventCollector, Notification
from wiretap.capture.policy import (
    REDACTED,
    TRUNCATION_MARKER,
    CapturePolicy,
    PolicySnapshot,
    redact,
    truncate,
)
from wiretap.capture.records import (
    LogRecord,
    NetworkRecord,
    Timing,
    message_hash,
    normalize_method,
    now_ms,
)

__all__ = [
    "REDACTED",
    "TRUNCATION_MARKER",
    "CapturePolicy",
    "CollectorSnapshot",
    "EventCollector",
    "LogRecord",
    "NetworkRecord",
    "Notification",
    "PolicySnapshot",
    "RingBuffer",
    "Timing",
    "message_hash",
    "normalize_method",
    "now_ms",
    "redact",
    "truncate",
]
