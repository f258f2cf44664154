"""Serialized, throttled runner for upstream requests.

Every call that reaches the Librus register goes through one RequestQueue so
that concurrent producers (the scheduled refresh, the on-demand lessons
fallback and the events feed) collapse into a single fixed-cadence lane.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default spacing between two upstream calls
DEFAULT_DELAY_SECONDS = 0.5


class RequestQueue:
    """FIFO task runner with a single consumer and a minimum delay between tasks.

    Tasks are zero-argument callables returning an awaitable. They run one at a
    time, in submission order. A failing task only fails its own waiter; the
    consumer carries on with the next task.

    The consumer is started on demand and exits as soon as the queue is empty,
    so an idle queue costs nothing. The delay is measured from the end of the
    previous task, including across consumer restarts, which keeps sequential
    callers (submit, await, submit again) throttled as well.
    """

    def __init__(
        self,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize request queue.

        Args:
            delay_seconds: Minimum pause between the end of one task and the start of the next
            clock: Monotonic clock used to measure the pause (injectable for tests)
        """
        self.delay_seconds = max(0.0, float(delay_seconds))
        self._clock = clock
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future[Any]]] = deque()
        self._consumer: Optional[asyncio.Task[None]] = None
        self._current: Optional[asyncio.Future[Any]] = None
        self._last_finished: Optional[float] = None
        self._completed = 0

    @property
    def pending(self) -> int:
        """Number of tasks waiting to run (not counting the running one)."""
        return len(self._queue)

    @property
    def is_processing(self) -> bool:
        """True while a consumer loop is active."""
        return self._consumer is not None and not self._consumer.done()

    @property
    def completed(self) -> int:
        """Number of tasks run since the queue was created."""
        return self._completed

    async def submit(self, task: Callable[[], Awaitable[T]]) -> T:
        """Enqueue ``task`` and wait for its outcome.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            Whatever the task returns

        Raises:
            Whatever the task raises
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._queue.append((task, future))

        if not self.is_processing:
            self._consumer = asyncio.create_task(self._process())

        return await future

    async def _process(self) -> None:
        """Consumer loop: drain the queue one task at a time."""
        while self._queue:
            await self._wait_for_slot()

            task, future = self._queue.popleft()
            self._current = future
            try:
                result = await task()
            except Exception as exc:
                logger.debug("Queued task failed: %s", exc)
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._current = None
                self._last_finished = self._clock()
                self._completed += 1

        logger.debug("Request queue drained after %d tasks", self._completed)

    async def _wait_for_slot(self) -> None:
        """Sleep until ``delay_seconds`` have passed since the previous task ended."""
        if self._last_finished is None or self.delay_seconds <= 0:
            return
        remaining = self._last_finished + self.delay_seconds - self._clock()
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def close(self) -> None:
        """Stop the consumer and fail every task still waiting.

        Only used at shutdown; a task that is already running is cancelled.
        """
        current = self._current
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
        if current is not None and not current.done():
            current.cancel()

        while self._queue:
            _task, future = self._queue.popleft()
            if not future.done():
                future.cancel()

        logger.debug("Request queue closed")
