"""Guard that runs a completion callback exactly once when it goes out of scope."""

from __future__ import annotations

from typing import Callable, Optional

Closure = Callable[[], object]


class ClosureGuard:
    """Hold a ``done`` callback and run it when the guard is closed.

    Use it as a context manager: the callback runs on leaving the block,
    whether or not an exception was raised.
    """

    def __init__(self, done: Optional[Closure] = None) -> None:
        self._done = done

    def reset(self, done: Optional[Closure]) -> None:
        """Run the held callback, if any, and hold ``done`` instead."""
        previous, self._done = self._done, done
        if previous is not None:
            previous()

    def release(self) -> Optional[Closure]:
        """Give up the held callback without running it and return it."""
        previous, self._done = self._done, None
        return previous

    def empty(self) -> bool:
        """Return True if no callback is held."""
        return self._done is None

    def swap(self, other: "ClosureGuard") -> None:
        """Exchange held callbacks with another guard."""
        self._done, other._done = other._done, self._done

    def close(self) -> None:
        """Run the held callback, if any, and forget it."""
        self.reset(None)

    def __enter__(self) -> "ClosureGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()