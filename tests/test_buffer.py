"""Tests for wiretap.capture.buffer — bounded ring storage."""

import threading

from wiretap.capture.buffer import RingBuffer


class TestRingBuffer:
    """Capacity, eviction order and snapshots."""

    def test_push_and_len(self) -> None:
        buf: RingBuffer[int] = RingBuffer(3)
        assert len(buf) == 0
        buf.push(1)
        assert len(buf) == 1
        assert buf.size() == 1

    def test_evicts_oldest(self) -> None:
        buf: RingBuffer[int] = RingBuffer(3)
        for i in range(5):
            buf.push(i)
        assert buf.snapshot() == [2, 3, 4]

    def test_keeps_last_capacity_items(self) -> None:
        buf: RingBuffer[int] = RingBuffer(10)
        for i in range(1_000):
            buf.push(i)
        assert buf.snapshot() == list(range(990, 1_000))

    def test_capacity_clamped_to_one(self) -> None:
        buf: RingBuffer[str] = RingBuffer(0)
        assert buf.capacity == 1
        buf.push("a")
        buf.push("b")
        assert buf.snapshot() == ["b"]

    def test_negative_capacity_clamped(self) -> None:
        assert RingBuffer(-5).capacity == 1

    def test_clear(self) -> None:
        buf: RingBuffer[int] = RingBuffer(3)
        buf.push(1)
        buf.push(2)
        buf.clear()
        assert buf.snapshot() == []
        buf.push(3)
        assert buf.snapshot() == [3]

    def test_snapshot_is_a_copy(self) -> None:
        buf: RingBuffer[int] = RingBuffer(3)
        buf.push(1)
        snap = buf.snapshot()
        snap.append(99)
        assert buf.snapshot() == [1]

    def test_concurrent_pushes(self) -> None:
        buf: RingBuffer[int] = RingBuffer(50)

        def worker() -> None:
            for i in range(500):
                buf.push(i)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(buf) == 50
