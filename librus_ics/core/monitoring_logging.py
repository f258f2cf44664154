"""Structured monitoring events for librus_ics.

Refresh cycles, upstream auth recoveries and server lifecycle changes are
emitted as single-line JSON entries with a fixed schema so they can be
grepped or shipped to a log collector without parsing free text.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, Optional

# Default log schema version
SCHEMA_VERSION = "1.0"

# Log levels mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Global logger cache
_logger_cache: dict[str, MonitoringLogger] = {}


class LogEntry:
    """Structured log entry with consistent schema."""

    def __init__(
        self,
        component: str,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize log entry.

        Args:
            component: Component name (server|scheduler|upstream|feed)
            level: Log level (DEBUG|INFO|WARN|ERROR|CRITICAL)
            event: Short event code (e.g., "refresh.cycle.complete")
            message: Human readable description
            details: Additional context data
        """
        self.timestamp = datetime.now(UTC)
        self.component = component
        self.level = level.upper()
        self.event = event
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary following the standard schema."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "level": self.level,
            "event": self.event,
            "message": self.message,
            "details": self.details,
            "schema_version": SCHEMA_VERSION,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


class MonitoringLogger:
    """Emits :class:`LogEntry` objects through the standard logging tree.

    Entries go to the ``librus_ics.monitoring.<component>`` logger, so handler
    and level configuration from :func:`configure_logging` applies unchanged.
    """

    def __init__(self, component: str):
        self.component = component
        self._logger = logging.getLogger(f"librus_ics.monitoring.{component}")

    def log(
        self,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> LogEntry:
        """Log a structured event.

        Returns:
            The entry that was emitted (useful in tests)
        """
        entry = LogEntry(self.component, level, event, message, details)
        self._logger.log(LOG_LEVELS.get(entry.level, logging.INFO), entry.to_json())
        return entry


def get_logger(component: str) -> MonitoringLogger:
    """Return the cached monitoring logger for ``component``."""
    if component not in _logger_cache:
        _logger_cache[component] = MonitoringLogger(component)
    return _logger_cache[component]


def log_monitoring_event(
    event: str,
    message: str,
    level: str = "INFO",
    component: str = "scheduler",
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Log a monitoring event for ``component``."""
    get_logger(component).log(level, event, message, details=details)
