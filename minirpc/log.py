"""Asynchronous file logger with per-thread buffering and file rotation."""

from __future__ import annotations

import enum
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Optional

from minirpc.block_queue import BlockQueue

BUFFER_SIZE = 100


class LogLevel(enum.IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3

    @property
    def tag(self) -> str:
        return _TAGS[self]


_TAGS = {
    LogLevel.DEBUG: "[debug]:",
    LogLevel.INFO: "[info]:",
    LogLevel.WARN: "[warn]:",
    LogLevel.ERROR: "[erro]:",
}


class Logger:
    """Logger whose lines go through a per-thread buffer, a shared queue and a
    background writer thread into a dated log file."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queue_lock = threading.Lock()
        self._local = threading.local()
        self._queue: Optional[BlockQueue[str]] = None
        self._fp: Optional[IO[str]] = None
        self._close_log = 1
        self._log_buf_size = 8192
        self._split_lines = 5_000_000
        self._count = 0
        self._today = 0
        self._dir_name = ""
        self._log_name = ""
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def init(
        self,
        file_name: str,
        close_log: int = 0,
        log_buf_size: int = 8192,
        split_lines: int = 5_000_000,
        max_queue_size: int = 1000,
    ) -> Path:
        """Open the log file, start the writer thread and return the file path."""
        if self._fp is not None:
            raise RuntimeError("logger is already initialised")
        if split_lines <= 0:
            raise ValueError(f"split_lines must be positive, got {split_lines}")
        queue: BlockQueue[str] = BlockQueue(max_queue_size)

        now = datetime.now()
        dir_name, sep, log_name = file_name.rpartition("/")
        if sep:
            dir_name += sep
        path = Path(f"{dir_name}{now:%Y_%m_%d}_{log_name}")
        fp = open(path, "a", encoding="utf-8")

        self._queue = queue
        self._fp = fp
        self._close_log = close_log
        self._log_buf_size = log_buf_size
        self._split_lines = split_lines
        self._count = 0
        self._today = now.day
        self._dir_name = dir_name
        self._log_name = log_name
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._async_write_log, name="log-writer", daemon=True
        )
        self._thread.start()
        return path

    def is_open(self) -> bool:
        """Return True if logging is switched on."""
        return self._close_log == 0

    def _buffer(self) -> list[str]:
        buffer = getattr(self._local, "buffer", None)
        if buffer is None:
            buffer = self._local.buffer = []
        return buffer

    def _pending(self) -> int:
        return len(self._buffer())

    def _push_buffer(self, buffer: list[str]) -> None:
        if self._queue is None:
            raise RuntimeError("logger is not initialised")
        with self._queue_lock:
            for line in buffer:
                self._queue.push(line)
            buffer.clear()

    def write_log(self, level: LogLevel, message: str) -> None:
        """Format ``message`` and add it to the calling thread's buffer."""
        if self._fp is None:
            raise RuntimeError("logger is not initialised")
        level = LogLevel(level)
        now = datetime.now()

        with self._lock:
            self._count += 1
            if self._today != now.day or self._count % self._split_lines == 0:
                self._fp.flush()
                self._fp.close()
                tail = f"{now:%Y_%m_%d}_"
                if self._today != now.day:
                    new_log = f"{self._dir_name}{tail}{self._log_name}"
                    self._today = now.day
                    self._count = 0
                else:
                    part = self._count // self._split_lines
                    new_log = f"{self._dir_name}{tail}{self._log_name}.{part}"
                self._fp = open(new_log, "a", encoding="utf-8")

        line = (
            f"{now:%Y-%m-%d %H:%M:%S}.{now.microsecond:06d} "
            f"{level.tag} {message}\n"
        )
        buffer = self._buffer()
        buffer.append(line)
        if len(buffer) >= BUFFER_SIZE:
            self._push_buffer(buffer)

    def flush_local_buffer(self) -> None:
        """Hand the calling thread's buffered lines to the writer queue."""
        self._push_buffer(self._buffer())

    def flush(self) -> None:
        """Flush the log file."""
        with self._lock:
            if self._fp is not None:
                self._fp.flush()

    def _write_batch(self, batch: list[str]) -> None:
        with self._lock:
            if self._fp is not None:
                self._fp.writelines(batch)
                self._fp.flush()

    def _async_write_log(self) -> None:
        assert self._queue is not None
        while not self._stop.is_set():
            with self._queue_lock:
                batch = self._queue.drain()
            if batch:
                self._write_batch(batch)
            else:
                self._stop.wait(0.01)

    def close(self) -> None:
        """Stop the writer thread, write what is queued and close the file."""
        if self._fp is None:
            return
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._queue is not None:
            with self._queue_lock:
                remaining = self._queue.drain()
            if remaining:
                self._write_batch(remaining)
        with self._lock:
            self._fp.flush()
            self._fp.close()
            self._fp = None
        self._close_log = 1


_instance: Optional[Logger] = None
_instance_lock = threading.Lock()


def get_logger() -> Logger:
    """Return the process-wide logger."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Logger()
        return _instance


def _log(level: LogLevel, message: str) -> None:
    logger = get_logger()
    if logger.is_open():
        logger.write_log(level, message)
        if logger._pending() >= BUFFER_SIZE // 2:
            logger.flush()


def log_debug(message: str) -> None:
    _log(LogLevel.DEBUG, message)


def log_info(message: str) -> None:
    _log(LogLevel.INFO, message)


def log_warn(message: str) -> None:
    _log(LogLevel.WARN, message)


def log_error(message: str) -> None:
    _log(LogLevel.ERROR, message)