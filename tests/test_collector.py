"""Tests for wiretap.capture.collector — history, pause control, notifications."""

from __future__ import annotations

import threading

from conftest import make_log, make_network

from wiretap.capture.collector import EventCollector, Notification


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


class TestRecording:
    """add_log / add_network — buffering and capacity."""

    def test_add_log(self, collector: EventCollector) -> None:
        record = make_log("a")
        collector.add_log(record)
        assert collector.get_logs() == [record]

    def test_add_network(self, collector: EventCollector) -> None:
        record = make_network()
        collector.add_network(record)
        assert collector.get_requests() == [record]

    def test_capacity_keeps_most_recent(self) -> None:
        collector = EventCollector(max_logs=3, max_requests=2)
        logs = [make_log(str(i)) for i in range(5)]
        for record in logs:
            collector.add_log(record)
        assert collector.get_logs() == logs[-3:]

    def test_channels_independent(self, collector: EventCollector) -> None:
        collector.add_log(make_log())
        assert collector.get_requests() == []


# ---------------------------------------------------------------------------
# Pause / clear
# ---------------------------------------------------------------------------


class TestPause:
    """set_paused — per-channel suppression."""

    def test_paused_logs_dropped(self, collector: EventCollector) -> None:
        collector.set_paused("logs", True)
        collector.add_log(make_log())
        assert collector.get_logs() == []

    def test_pause_is_per_channel(self, collector: EventCollector) -> None:
        collector.set_paused("network", True)
        collector.add_log(make_log())
        collector.add_network(make_network())
        assert len(collector.get_logs()) == 1
        assert collector.get_requests() == []

    def test_resume(self, collector: EventCollector) -> None:
        collector.set_paused("logs", True)
        collector.add_log(make_log("dropped"))
        collector.set_paused("logs", False)
        collector.add_log(make_log("kept"))
        assert [r.message for r in collector.get_logs()] == ["kept"]

    def test_status(self, collector: EventCollector) -> None:
        assert collector.get_status() == {"pausedLogs": False, "pausedNetwork": False}
        collector.set_paused("network", True)
        assert collector.get_status() == {"pausedLogs": False, "pausedNetwork": True}
        assert collector.is_paused("network")
        assert not collector.is_paused("logs")

    def test_unknown_channel_ignored(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.set_paused("bogus", True)  # type: ignore[arg-type]
        assert notifications == []


class TestClear:
    """clear — scoped buffer reset."""

    def _fill(self, collector: EventCollector) -> None:
        collector.add_log(make_log())
        collector.add_network(make_network())

    def test_clear_logs(self, collector: EventCollector) -> None:
        self._fill(collector)
        collector.clear("logs")
        assert collector.get_logs() == []
        assert len(collector.get_requests()) == 1

    def test_clear_network(self, collector: EventCollector) -> None:
        self._fill(collector)
        collector.clear("network")
        assert len(collector.get_logs()) == 1
        assert collector.get_requests() == []

    def test_clear_all(self, collector: EventCollector) -> None:
        self._fill(collector)
        collector.clear("all")
        assert collector.get_logs() == []
        assert collector.get_requests() == []

    def test_clear_ignores_pause(self, collector: EventCollector) -> None:
        self._fill(collector)
        collector.set_paused("logs", True)
        collector.clear("logs")
        assert collector.get_logs() == []
        assert collector.is_paused("logs")

    def test_unknown_target_ignored(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        self._fill(collector)
        notifications.clear()
        collector.clear("everything")  # type: ignore[arg-type]
        assert len(collector.get_logs()) == 1
        assert notifications == []


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class TestNotifications:
    """Listener fan-out and sequence numbers."""

    def test_log_notification(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        record = make_log()
        collector.add_log(record)
        assert len(notifications) == 1
        assert notifications[0].kind == "log"
        assert notifications[0].payload is record

    def test_paused_record_not_announced(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.set_paused("logs", True)
        notifications.clear()
        collector.add_log(make_log())
        assert notifications == []

    def test_status_notification(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.set_paused("logs", True)
        assert notifications[-1].kind == "status"
        assert notifications[-1].payload == {"pausedLogs": True, "pausedNetwork": False}

    def test_clear_notification(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.clear("network")
        assert notifications[-1].kind == "clear"
        assert notifications[-1].payload == "network"

    def test_sequence_increases(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.add_log(make_log())
        collector.add_network(make_network())
        collector.clear("all")
        seqs = [n.seq for n in notifications]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 3

    def test_unsubscribe(self, collector: EventCollector) -> None:
        seen: list[Notification] = []
        unsubscribe = collector.subscribe(seen.append)
        assert collector.listener_count == 1
        unsubscribe()
        collector.add_log(make_log())
        assert seen == []
        assert collector.listener_count == 0

    def test_failing_listener_isolated(self, collector: EventCollector) -> None:
        seen: list[Notification] = []

        def broken(_: Notification) -> None:
            raise RuntimeError("listener bug")

        collector.subscribe(broken)
        collector.subscribe(seen.append)
        collector.add_log(make_log())
        assert len(seen) == 1
        assert len(collector.get_logs()) == 1

    def test_record_announced_before_later_clear(self, collector: EventCollector) -> None:
        order: list[str] = []
        entered = threading.Event()
        release = threading.Event()

        def slow_listener(n: Notification) -> None:
            if n.kind == "log" and not entered.is_set():
                entered.set()
                release.wait(5)
            order.append(n.kind)

        collector.subscribe(slow_listener)
        producer = threading.Thread(target=collector.add_log, args=(make_log(),))
        producer.start()
        assert entered.wait(5)

        clearer = threading.Thread(target=collector.clear, args=("logs",))
        clearer.start()
        clearer.join(0.2)
        assert clearer.is_alive()

        release.set()
        producer.join(5)
        clearer.join(5)
        assert order == ["log", "clear"]
        assert collector.get_logs() == []

    def test_listener_may_record(self, collector: EventCollector) -> None:
        def echo(n: Notification) -> None:
            if n.kind == "network":
                collector.add_log(make_log("saw request"))

        collector.subscribe(echo)
        collector.add_network(make_network())
        assert [r.message for r in collector.get_logs()] == ["saw request"]


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    """snapshot — atomic view plus sequence high-water mark."""

    def test_contents(self, collector: EventCollector) -> None:
        log = make_log()
        req = make_network()
        collector.add_log(log)
        collector.add_network(req)
        collector.set_paused("network", True)
        snap = collector.snapshot()
        assert snap.logs == [log]
        assert snap.requests == [req]
        assert snap.status == {"pausedLogs": False, "pausedNetwork": True}

    def test_seq_splits_notifications(
        self, collector: EventCollector, notifications: list[Notification]
    ) -> None:
        collector.add_log(make_log("before"))
        snap = collector.snapshot()
        collector.add_log(make_log("after"))
        before, after = notifications
        assert before.seq <= snap.seq
        assert after.seq > snap.seq

    def test_concurrent_producers(self) -> None:
        collector = EventCollector(max_logs=10_000)
        seen: list[Notification] = []
        lock = threading.Lock()

        def listener(n: Notification) -> None:
            with lock:
                seen.append(n)

        collector.subscribe(listener)

        def worker(tag: str) -> None:
            for i in range(200):
                collector.add_log(make_log(f"{tag}-{i}"))

        threads = [threading.Thread(target=worker, args=(f"t{i}",)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(collector.get_logs()) == 800
        assert len({n.seq for n in seen}) == 800
        assert [n.seq for n in seen] == sorted(n.seq for n in seen)
        assert collector.snapshot().seq == 800
