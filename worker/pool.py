"""Bounded task pool used by the PerformTask handler.

ThreadPoolExecutor caps how many tasks run at once but queues everything else
without limit. With max_pending=0 that unbounded backlog is kept; with
max_pending > 0 submissions beyond that many queued-or-running tasks are
refused with PoolSaturated so the caller can answer success=false.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from .metrics import pool_pending

log = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5


class PoolSaturated(Exception):
    def __init__(self, pending: int) -> None:
        super().__init__(f"worker pool saturated; {pending} tasks pending")
        self.pending = pending


class TaskPool:
    def __init__(self, max_workers: int = DEFAULT_POOL_SIZE, max_pending: int = 0) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.max_pending = max(0, max_pending)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="monitor-task"
        )
        self._lock = threading.Lock()
        self._pending = 0

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def _acquire(self) -> None:
        with self._lock:
            if self.max_pending and self._pending >= self.max_pending:
                raise PoolSaturated(self._pending)
            self._pending += 1
            pool_pending.set(self._pending)

    def _release(self) -> None:
        with self._lock:
            self._pending -= 1
            pool_pending.set(self._pending)

    def _on_done(self, future: Future) -> None:
        self._release()
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("Task crashed in worker pool", exc_info=exc)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Schedule fn(*args, **kwargs) without waiting for it."""
        self._acquire()
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            # executor already shut down
            self._release()
            raise
        future.add_done_callback(self._on_done)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def stats(self) -> dict:
        return {
            "max_workers": self.max_workers,
            "max_pending": self.max_pending,
            "pending": self.pending,
        }


__all__ = ["TaskPool", "PoolSaturated", "DEFAULT_POOL_SIZE"]
