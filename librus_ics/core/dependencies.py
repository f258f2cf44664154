"""Dependency injection container for the librus_ics server."""

from __future__ import annotations

import datetime
import zoneinfo
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class AppDependencies:
    """Container for all application state and collaborators.

    One instance per running application; nothing here is a module global,
    so tests can build as many isolated instances as they need.
    """

    # Configuration
    config: Any

    # Upstream access
    gateway: Any
    queue: Any
    token: Any
    session: Any

    # Caches
    fragments: Any
    artifacts: Any

    # Business logic components
    encoder: Any
    lesson_fetcher: Any
    events_feed: Any
    scheduler: Any

    # Infrastructure
    health_tracker: Any

    # Utility functions
    time_provider: Callable[[], datetime.datetime]


class DependencyContainer:
    """Factory for building application dependencies."""

    @staticmethod
    def build_dependencies(
        config: Any,
        gateway: Any = None,
        encoder: Any = None,
        time_provider: Optional[Callable[[], datetime.datetime]] = None,
    ) -> AppDependencies:
        """Build all application dependencies.

        Args:
            config: Application configuration
            gateway: Upstream gateway (defaults to a LibrusGateway from config credentials)
            encoder: Calendar encoder (defaults to IcsEncoder in the configured timezone)
            time_provider: Local-time clock for week calculations

        Returns:
            AppDependencies container with all dependencies initialized
        """
        from librus_ics.calendar.encoder import IcsEncoder
        from librus_ics.core.config_manager import DEFAULT_CONFIG, get_config_value
        from librus_ics.core.health_tracker import HealthTracker
        from librus_ics.core.request_queue import RequestQueue
        from librus_ics.core.session_token import SessionToken
        from librus_ics.core.upstream_session import UpstreamSession
        from librus_ics.domain.events_feed import EventsFeed
        from librus_ics.domain.fragment_cache import ArtifactCache, WeekFragmentCache
        from librus_ics.domain.lesson_fetcher import LessonFetcher
        from librus_ics.domain.refresh_scheduler import RefreshScheduler
        from librus_ics.upstream.gateway import LibrusGateway

        def cfg(key: str) -> Any:
            return get_config_value(config, key, DEFAULT_CONFIG[key])

        timezone = cfg("timezone")
        if time_provider is None:
            tz = zoneinfo.ZoneInfo(timezone)

            def time_provider() -> datetime.datetime:
                return datetime.datetime.now(tz)

        if gateway is None:
            gateway = LibrusGateway(cfg("login"), cfg("password"))
        if encoder is None:
            encoder = IcsEncoder(timezone=timezone, calendar_name="Librus")

        queue = RequestQueue(delay_seconds=float(cfg("queue_delay_seconds")))
        token = SessionToken(gateway, lifetime_seconds=float(cfg("token_lifetime_seconds")))
        session = UpstreamSession(
            queue, token, retry_backoff_seconds=float(cfg("auth_retry_backoff_seconds"))
        )

        fragments = WeekFragmentCache()
        artifacts = ArtifactCache()

        near_interval = float(cfg("near_refresh_interval_seconds"))
        health_tracker = HealthTracker(stale_after_seconds=2 * near_interval)

        lesson_fetcher = LessonFetcher(
            session,
            gateway,
            fragments,
            artifacts,
            encoder,
            excluded_subjects=cfg("excluded_subjects"),
        )
        events_feed = EventsFeed(
            session,
            gateway,
            artifacts,
            encoder,
            ttl_seconds=float(cfg("events_cache_ttl_seconds")),
        )
        scheduler = RefreshScheduler(
            lesson_fetcher,
            health_tracker=health_tracker,
            near_interval_seconds=near_interval,
            far_interval_seconds=float(cfg("far_refresh_interval_seconds")),
            weeks_ahead=int(cfg("near_weeks_ahead")),
            now=time_provider,
        )

        return AppDependencies(
            config=config,
            gateway=gateway,
            queue=queue,
            token=token,
            session=session,
            fragments=fragments,
            artifacts=artifacts,
            encoder=encoder,
            lesson_fetcher=lesson_fetcher,
            events_feed=events_feed,
            scheduler=scheduler,
            health_tracker=health_tracker,
            time_provider=time_provider,
        )
