"""Fixed-size pool of worker threads that run tasks as coroutines."""

from __future__ import annotations

import threading
from collections import deque

from minirpc.coroutine import Task, get_scheduler
from minirpc.log import get_logger, log_error, log_info


class ThreadPool:
    """Run submitted tasks on a fixed set of worker threads.

    Each worker hands a task to its own thread's scheduler, so a task
    written as a generator function may ``yield`` to give up control.
    """

    def __init__(self, thread_count: int) -> None:
        self._tasks: deque[Task] = deque()
        self._cond = threading.Condition()
        self._stop = False
        self._workers = [
            threading.Thread(
                target=self._worker_loop, name=f"pool-worker-{index}", daemon=True
            )
            for index in range(thread_count)
        ]
        for worker in self._workers:
            worker.start()

    def add_task(self, func: Task) -> None:
        """Queue ``func`` to be run by one of the workers."""
        with self._cond:
            if self._stop:
                raise RuntimeError("cannot add a task to a pool that is shut down")
            self._tasks.append(func)
            self._cond.notify_all()

    def shutdown(self) -> None:
        """Finish every queued task, then stop and join the workers."""
        with self._cond:
            self._stop = True
            self._cond.notify_all()
        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def _next_task(self) -> Task | None:
        with self._cond:
            self._cond.wait_for(lambda: self._stop or bool(self._tasks))
            if not self._tasks:
                return None
            return self._tasks.popleft()

    def _worker_loop(self) -> None:
        log_info("[Thread] worker loop started")
        try:
            while (task := self._next_task()) is not None:
                scheduler = get_scheduler()
                scheduler.add_coroutine(task)
                log_info("[Thread] added task to scheduler")
                try:
                    scheduler.run()
                except Exception as exc:
                    log_error(f"[Thread] task failed: {exc!r}")
        finally:
            logger = get_logger()
            if logger.is_open():
                logger.flush_local_buffer()
                log_info("[Thread] Local logs flushed")