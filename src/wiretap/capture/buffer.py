"""Ring buffer — bounded, thread-safe, insertion-ordered storage.

Backs the collector's log and network history.  When the buffer is full
the oldest element is discarded on every push, so memory stays bounded no
matter how many events the host process produces.

Thread Safety:
    All methods are protected by a ``threading.Lock``.  Safe for
    concurrent pushes and snapshots from multiple threads.

"""

import threading
from collections import deque
from typing import Generic, TypeVar


T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-capacity FIFO store with oldest-eviction.

    Args:
        capacity: Maximum number of elements retained.  Clamped to at least 1.

    """

    __slots__ = ("_capacity", "_items", "_lock")

    def __init__(self, capacity: int) -> None:
        self._capacity = max(1, int(capacity))
        self._items: deque[T] = deque(maxlen=self._capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Maximum number of elements the buffer holds."""
        return self._capacity

    def push(self, item: T) -> None:
        """Append an item, evicting the oldest one when at capacity."""
        with self._lock:
            self._items.append(item)

    def clear(self) -> None:
        """Drop every element."""
        with self._lock:
            self._items.clear()

    def snapshot(self) -> list[T]:
        """Return a copy of the contents, oldest first."""
        with self._lock:
            return list(self._items)

    def size(self) -> int:
        """Current number of elements."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()
