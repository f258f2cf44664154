"""Authenticated, throttled access to the upstream register.

Wraps one upstream operation into a RequestQueue task that first checks the
session token, and applies the recovery policy for rejected sessions:
invalidate, wait a fixed backoff, retry exactly once with a forced login.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Callable, TypeVar

from librus_ics.core.exceptions import UpstreamAuthError
from librus_ics.core.monitoring_logging import log_monitoring_event
from librus_ics.core.request_queue import RequestQueue
from librus_ics.core.session_token import SessionToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_AUTH_RETRY_BACKOFF_SECONDS = 1.0


class UpstreamSession:
    """Runs upstream operations through the queue with the token gate."""

    def __init__(
        self,
        queue: RequestQueue,
        token: SessionToken,
        retry_backoff_seconds: float = DEFAULT_AUTH_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.queue = queue
        self.token = token
        self.retry_backoff_seconds = max(0.0, float(retry_backoff_seconds))

    async def call(self, operation: Callable[[], Awaitable[T]], description: str = "request") -> T:
        """Run ``operation`` once the session is known to be valid.

        Args:
            operation: Zero-argument coroutine function performing the upstream call
            description: Short label used in log messages

        Returns:
            The operation's result

        Raises:
            UpstreamAuthError: Authentication failed on the first attempt and on the retry
            UpstreamError: Any other upstream failure (never retried here)
        """
        try:
            return await self.queue.submit(lambda: self._attempt(operation, force_refresh=False))
        except UpstreamAuthError as e:
            self.token.invalidate()
            log_monitoring_event(
                "upstream.auth.retry",
                f"Authentication rejected during {description}, retrying once",
                "WARNING",
                component="upstream",
                details={"error": str(e), "backoff_seconds": self.retry_backoff_seconds},
            )

        await asyncio.sleep(self.retry_backoff_seconds)

        try:
            return await self.queue.submit(lambda: self._attempt(operation, force_refresh=True))
        except UpstreamAuthError as e:
            self.token.invalidate()
            log_monitoring_event(
                "upstream.auth.failed",
                f"Authentication still rejected after retry during {description}",
                "ERROR",
                component="upstream",
                details={"error": str(e)},
            )
            raise

    async def _attempt(self, operation: Callable[[], Awaitable[T]], force_refresh: bool) -> T:
        if not await self.token.ensure(force_refresh=force_refresh):
            raise UpstreamAuthError("Authentication failed")
        return await operation()
