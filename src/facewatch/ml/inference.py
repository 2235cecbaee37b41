"""Thread pool for blocking face models.

Architecture:
    DetectionScheduler (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> FaceModel.detect

Calls beyond the semaphore limit wait up to ``inference_queue_timeout``
seconds for a slot, then fail with ``TimeoutError``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from facewatch.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Bounds how many blocking model calls run at once and off which threads."""

    def __init__(self, max_concurrent: int = 2, queue_timeout: float = 5.0) -> None:
        self._queue_timeout = queue_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent,
            thread_name_prefix="face-inference",
        )
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> InferencePool:
        return cls(
            max_concurrent=settings.max_concurrent,
            queue_timeout=settings.inference_queue_timeout,
        )

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a blocking function on the pool and return its result.

        The slot is held until the worker thread finishes, even when the
        awaiting caller is cancelled first, so the counters reflect threads
        that are really busy.

        Raises:
            TimeoutError: If no slot frees up within the queue timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._queue_timeout)
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        loop = asyncio.get_running_loop()
        try:
            future = self._executor.submit(func, *args)
        except BaseException:
            self._release_slot(loop)
            raise
        future.add_done_callback(lambda _: self._release_slot(loop))
        return await asyncio.wrap_future(future)

    def _release_slot(self, loop: asyncio.AbstractEventLoop) -> None:
        # Runs on the worker thread once the call has finished.
        with self._counter_lock:
            self._active_count -= 1
        if not loop.is_closed():
            loop.call_soon_threadsafe(self._semaphore.release)

    @property
    def active_count(self) -> int:
        """Number of model calls currently executing."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of model calls waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Wait for running calls and stop the worker threads."""
        self._executor.shutdown(wait=True)
        logger.info("Inference pool shut down")
