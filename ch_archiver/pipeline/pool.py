"""
Bounded worker pool shared by every host task.

`ThreadPoolExecutor.submit` never blocks, it queues without limit. Export
units must instead apply backpressure to the host tasks that produce them so
the HDFS sink sees at most `size` concurrent writers no matter how many hosts
are exporting. A bounded semaphore guards the executor: a slot is taken on
submit and given back when the unit finishes.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)


class PoolClosedError(RuntimeError):
    """Raised when submitting to a pool that has been joined."""


class BoundedWorkerPool:
    """
    Fixed-size pool whose `submit` blocks while every slot is busy.

    Parameters
    ----------
    size : int
        Maximum number of units executing (or admitted) at once.
    name : str
        Thread name prefix, useful in logs and thread dumps.
    """

    def __init__(self, size: int, name: str = "export") -> None:
        if size < 1:
            raise ValueError("Pool size must be at least 1")
        self.size = size
        self._slots = threading.BoundedSemaphore(size)
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._futures: List[Future] = []
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """
        Schedule `fn(*args, **kwargs)`, blocking until a slot is free.
        """
        self._slots.acquire()
        try:
            with self._lock:
                if self._closed:
                    raise PoolClosedError("Cannot submit to a closed worker pool")
                future = self._executor.submit(fn, *args, **kwargs)
                self._futures.append(future)
        except BaseException:
            self._slots.release()
            raise
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        self._slots.release()
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            log.error("Unhandled error in pooled unit", exc_info=exc)

    @property
    def submitted(self) -> int:
        with self._lock:
            return len(self._futures)

    def join(self) -> None:
        """
        Wait barrier: stop accepting work and wait for every submitted unit.
        """
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "BoundedWorkerPool":
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: Any) -> None:
        self.join()


__all__ = ["BoundedWorkerPool", "PoolClosedError"]
