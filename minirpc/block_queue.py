"""A bounded, thread-safe FIFO queue with non-blocking push and pop."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class QueueEmpty(Exception):
    """Raised when an item is requested from an empty queue."""


class BlockQueue(Generic[T]):
    """Fixed-capacity FIFO queue guarded by a lock.

    ``push`` refuses new items once the queue is full instead of waiting,
    and reading from an empty queue raises :class:`QueueEmpty`.
    """

    def __init__(self, max_size: int = 1000) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._items: deque[T] = deque()
        self._cond = threading.Condition(threading.Lock())

    @property
    def max_size(self) -> int:
        """The capacity of the queue."""
        return self._max_size

    def full(self) -> bool:
        """Return True if no more items can be pushed."""
        with self._cond:
            return len(self._items) >= self._max_size

    def empty(self) -> bool:
        """Return True if the queue holds no items."""
        with self._cond:
            return not self._items

    def front(self) -> T:
        """Return the oldest item without removing it."""
        with self._cond:
            if not self._items:
                raise QueueEmpty("queue is empty")
            return self._items[0]

    def back(self) -> T:
        """Return the newest item without removing it."""
        with self._cond:
            if not self._items:
                raise QueueEmpty("queue is empty")
            return self._items[-1]

    def pop(self) -> T:
        """Remove and return the oldest item."""
        with self._cond:
            if not self._items:
                raise QueueEmpty("queue is empty")
            return self._items.popleft()

    def push(self, value: T) -> bool:
        """Append ``value``; return False and drop it if the queue is full."""
        with self._cond:
            if len(self._items) >= self._max_size:
                self._cond.notify_all()
                return False
            self._items.append(value)
            self._cond.notify()
            return True

    def drain(self) -> list[T]:
        """Remove and return every queued item, oldest first."""
        with self._cond:
            items = list(self._items)
            self._items.clear()
            return items

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)