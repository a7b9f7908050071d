"""Cooperative round-robin scheduling of generator-based coroutines."""

from __future__ import annotations

import enum
import inspect
import threading
from collections import deque
from typing import Callable, Generator, Optional, Union

Task = Callable[[], Union[None, Generator[object, object, object]]]


class CoroutineState(enum.Enum):
    READY = 0
    RUNNING = 1
    BLOCKED = 2
    FINISHED = 3


class Coroutine:
    """A task that runs until its next ``yield``.

    ``func`` may be a plain callable, which runs to completion on the first
    resume, or a generator function, whose every ``yield`` hands control
    back to the scheduler.
    """

    def __init__(self, func: Task) -> None:
        self.func = func
        self.state = CoroutineState.READY
        self._gen: Optional[Generator[object, object, object]] = None
        self._started = False

    def resume(self) -> CoroutineState:
        """Run until the next yield or completion and return the new state."""
        if self.state is not CoroutineState.READY:
            raise RuntimeError(f"cannot resume a {self.state.name.lower()} coroutine")
        self.state = CoroutineState.RUNNING
        try:
            if not self._started:
                self._started = True
                result = self.func()
                if not inspect.isgenerator(result):
                    self.state = CoroutineState.FINISHED
                    return self.state
                self._gen = result
            next(self._gen)
        except StopIteration:
            self.state = CoroutineState.FINISHED
            return self.state
        except BaseException:
            self.state = CoroutineState.FINISHED
            raise
        if self.state is CoroutineState.RUNNING:
            self.state = CoroutineState.READY
        return self.state


class Scheduler:
    """Round-robin scheduler for :class:`Coroutine` objects."""

    def __init__(self) -> None:
        self._coroutines: list[Coroutine] = []
        self._runnable: deque[int] = deque()
        self._stop = False
        self._current = -1

    def create_coroutine(self, func: Task) -> int:
        """Create a coroutine for ``func``, queue it and return its id."""
        coroutine_id = len(self._coroutines)
        self._coroutines.append(Coroutine(func))
        self._runnable.append(coroutine_id)
        return coroutine_id

    def add_coroutine(self, func: Task) -> int:
        """Queue ``func`` as a new coroutine and return its id."""
        return self.create_coroutine(func)

    def run(self) -> None:
        """Run queued coroutines until none is runnable or the scheduler stops."""
        while not self._stop and self._runnable:
            coroutine_id = self._runnable.popleft()
            coroutine = self._coroutines[coroutine_id]
            if coroutine.state in (CoroutineState.FINISHED, CoroutineState.BLOCKED):
                continue
            self._current = coroutine_id
            try:
                state = coroutine.resume()
            finally:
                self._current = -1
            if state in (CoroutineState.READY, CoroutineState.RUNNING):
                self._runnable.append(coroutine_id)

    def block_current(self) -> None:
        """Mark the running coroutine as blocked; it should yield right after."""
        if 0 <= self._current < len(self._coroutines):
            self._coroutines[self._current].state = CoroutineState.BLOCKED

    def wake(self, coroutine_id: int) -> None:
        """Make a blocked coroutine runnable again; other ids are ignored."""
        if 0 <= coroutine_id < len(self._coroutines):
            coroutine = self._coroutines[coroutine_id]
            if coroutine.state is CoroutineState.BLOCKED:
                coroutine.state = CoroutineState.READY
                self._runnable.append(coroutine_id)

    def stop(self) -> None:
        """Stop running coroutines; ``run`` returns at the next switch."""
        self._stop = True


_local = threading.local()


def get_scheduler() -> Scheduler:
    """Return the scheduler belonging to the calling thread."""
    scheduler = getattr(_local, "scheduler", None)
    if scheduler is None:
        scheduler = _local.scheduler = Scheduler()
    return scheduler