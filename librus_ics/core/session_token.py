"""Upstream session token with expiry estimate and invalidate-on-rejection."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Librus sessions live about an hour; stay safely below that.
DEFAULT_TOKEN_LIFETIME_SECONDS = 55 * 60


class SessionToken:
    """Tracks whether the shared upstream session can be trusted.

    States: absent (``expires_at is None``), valid (``now < expires_at``) and
    expired (valid past its expiry, treated as absent). The token itself lives
    in the gateway's cookie jar; this object only decides when a fresh login
    is needed.

    ``ensure()`` performs upstream I/O and is meant to be called from inside a
    RequestQueue task, which linearizes every read and write of this state.
    """

    def __init__(
        self,
        gateway: Any,
        lifetime_seconds: float = DEFAULT_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize session token.

        Args:
            gateway: Object exposing ``async authenticate() -> bool``
            lifetime_seconds: Assumed validity of a fresh session
            clock: Wall clock returning epoch seconds (injectable for tests)
        """
        self._gateway = gateway
        self.lifetime_seconds = float(lifetime_seconds)
        self._clock = clock
        self._expires_at: Optional[float] = None
        self._auth_attempts = 0

    @property
    def expires_at(self) -> Optional[float]:
        """Epoch seconds at which the session is assumed to expire, or None."""
        return self._expires_at

    @property
    def is_valid(self) -> bool:
        """True if a session is present and not past its expiry."""
        return self._expires_at is not None and self._clock() < self._expires_at

    @property
    def auth_attempts(self) -> int:
        """Number of real authentication calls made so far."""
        return self._auth_attempts

    async def ensure(self, force_refresh: bool = False) -> bool:
        """Make sure a usable session exists, logging in if needed.

        Args:
            force_refresh: Log in again even if the current session looks valid

        Returns:
            True if a session is available, False if authentication failed
        """
        if not force_refresh and self.is_valid:
            return True

        self._expires_at = None
        self._auth_attempts += 1
        logger.info("Creating new upstream session (forced=%s)", force_refresh)

        try:
            success = await self._gateway.authenticate()
        except Exception as e:
            logger.error("Upstream authentication failed: %s", e)
            return False

        if not success:
            logger.error("Upstream authentication rejected the configured credentials")
            return False

        self._expires_at = self._clock() + self.lifetime_seconds
        logger.debug("Upstream session valid for %d seconds", int(self.lifetime_seconds))
        return True

    def invalidate(self) -> None:
        """Drop the session so the next ``ensure()`` performs a real login."""
        if self._expires_at is not None:
            logger.debug("Invalidating upstream session")
        self._expires_at = None
