"""Event collector — owns the history buffers and fans out notifications.

Capture sources hand finished records to the collector.  The collector
checks the channel's pause flag, appends to the channel's ring buffer and
notifies every subscribed listener (normally the broadcast hub).

Every notification carries a collector-wide sequence number issued while
the affected channel lock is held.  ``snapshot()`` holds both channel locks,
so the sequence it returns splits notifications cleanly into "already part
of this snapshot" and "happened after it".  The hub uses that split to give
a newly connected observer a consistent baseline.

Thread Safety:
    Buffer mutations and pause flags are serialized by one lock per channel.
    Listeners run on the producer's thread with that lock held, so listeners
    see a channel's notifications in sequence order and a record is never
    announced after the clear that removed it.  Listeners must return
    quickly; the hub only schedules delivery on its own loop.

"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from wiretap._types import Channel, ClearTarget, NotificationKind
from wiretap.banner import print_warning
from wiretap.capture.buffer import RingBuffer
from wiretap.capture.records import LogRecord, NetworkRecord

CHANNELS: frozenset[str] = frozenset({"logs", "network"})
CLEAR_TARGETS: frozenset[str] = frozenset({"logs", "network", "all"})


@dataclass(frozen=True, slots=True)
class Notification:
    """A change in collector state.

    Attributes:
        kind: ``log``, ``network``, ``clear`` or ``status``.
        payload: The new record, the clear target, or the status dict.
        seq: Collector-wide sequence number, increasing.

    """

    kind: NotificationKind
    payload: Any
    seq: int


@dataclass(frozen=True, slots=True)
class CollectorSnapshot:
    """Both buffers and the pause flags, captured atomically."""

    logs: list[LogRecord]
    requests: list[NetworkRecord]
    status: dict[str, bool]
    seq: int


Listener: TypeAlias = Callable[[Notification], None]


class EventCollector:
    """Bounded log and network history with pause control.

    Args:
        max_logs: Capacity of the log buffer.
        max_requests: Capacity of the network buffer.

    """

    def __init__(self, max_logs: int = 10_000, max_requests: int = 5_000) -> None:
        self._logs: RingBuffer[LogRecord] = RingBuffer(max_logs)
        self._requests: RingBuffer[NetworkRecord] = RingBuffer(max_requests)
        self._log_lock = threading.RLock()
        self._network_lock = threading.RLock()
        self._paused_logs = False
        self._paused_network = False
        self._seq = 0
        self._seq_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._listeners_lock = threading.Lock()
        self._listener_warned = False

    # ----- Subscriptions -----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for every notification.

        Returns:
            A callable that removes the listener again.

        """
        with self._listeners_lock:
            self._listeners = [*self._listeners, listener]

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners = [fn for fn in self._listeners if fn is not listener]

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ----- Producers -----

    def add_log(self, record: LogRecord) -> None:
        """Append a log record unless the log channel is paused."""
        with self._log_lock:
            if self._paused_logs:
                return
            self._logs.push(record)
            self._emit(Notification("log", record, self._next_seq()))

    def add_network(self, record: NetworkRecord) -> None:
        """Append a network record unless the network channel is paused."""
        with self._network_lock:
            if self._paused_network:
                return
            self._requests.push(record)
            self._emit(Notification("network", record, self._next_seq()))

    # ----- Control -----

    def clear(self, target: ClearTarget) -> None:
        """Empty the named buffer(s) and announce it.

        Pause state does not matter.  Unknown targets are ignored.

        """
        if target not in CLEAR_TARGETS:
            return
        with self._log_lock, self._network_lock:
            if target in ("logs", "all"):
                self._logs.clear()
            if target in ("network", "all"):
                self._requests.clear()
            self._emit(Notification("clear", target, self._next_seq()))

    def set_paused(self, channel: Channel, paused: bool) -> None:
        """Pause or resume a channel and announce both flags."""
        if channel not in CHANNELS:
            return
        with self._log_lock, self._network_lock:
            if channel == "logs":
                self._paused_logs = bool(paused)
            else:
                self._paused_network = bool(paused)
            self._emit(Notification("status", self._status(), self._next_seq()))

    # ----- Readers -----

    def get_logs(self) -> list[LogRecord]:
        return self._logs.snapshot()

    def get_requests(self) -> list[NetworkRecord]:
        return self._requests.snapshot()

    def get_status(self) -> dict[str, bool]:
        """Return the current pause flags."""
        return self._status()

    def is_paused(self, channel: Channel) -> bool:
        return self._paused_logs if channel == "logs" else self._paused_network

    def snapshot(self) -> CollectorSnapshot:
        """Capture both buffers, the pause flags and the sequence high-water mark.

        Holds both channel locks, so no notification can be issued while
        the copy is taken.

        """
        with self._log_lock, self._network_lock:
            return CollectorSnapshot(
                logs=self._logs.snapshot(),
                requests=self._requests.snapshot(),
                status=self._status(),
                seq=self._seq,
            )

    # ----- Internals -----

    def _status(self) -> dict[str, bool]:
        return {"pausedLogs": self._paused_logs, "pausedNetwork": self._paused_network}

    def _next_seq(self) -> int:
        # Callers hold at least one channel lock; snapshot() holds both.
        with self._seq_lock:
            self._seq += 1
            return self._seq

    def _emit(self, notification: Notification) -> None:
        for listener in self._listeners:
            try:
                listener(notification)
            except Exception as exc:
                if not self._listener_warned:
                    self._listener_warned = True
                    print_warning(f"listener failed on {notification.kind!r}: {exc}")
