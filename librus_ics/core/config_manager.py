"""Configuration management for the librus_ics server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Subjects that never belong on the lessons calendar (electives and
# administrative placeholders of other groups).
DEFAULT_EXCLUDED_SUBJECTS: tuple[str, ...] = (
    "Zaawansowane aplikacje webowe",
    "Programowanie aplikacji desktopowych",
    "Programowanie aplikacji mobilnych",
    "Programowanie obiektowe i algorytmika",
)

DEFAULT_CONFIG: dict[str, Any] = {
    "login": None,
    "password": None,
    "server_bind": "0.0.0.0",  # nosec: B104 - default bind; override via env
    "server_port": 3000,
    "queue_delay_seconds": 0.5,
    "token_lifetime_seconds": 55 * 60,
    "auth_retry_backoff_seconds": 1.0,
    "near_refresh_interval_seconds": 30 * 60,
    "far_refresh_interval_seconds": 12 * 60 * 60,
    "near_weeks_ahead": 2,
    "events_cache_ttl_seconds": 30 * 60,
    "timezone": "Europe/Warsaw",
    "excluded_subjects": list(DEFAULT_EXCLUDED_SUBJECTS),
    "debug_logging": False,
}


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


def _first_env(*names: str) -> str | None:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _parse_number(raw: str, name: str, scale: float = 1.0) -> float | None:
    try:
        value = float(raw) * scale
    except ValueError:
        logger.warning("Invalid %s=%r; ignoring", name, raw)
        return None
    if value < 0:
        logger.warning("Negative %s=%r; ignoring", name, raw)
        return None
    return value


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - LIBRUS_LOGIN or LOGIN -> 'login'
        - LIBRUS_PASSWORD or PASSWORD -> 'password'
        - LIBRUS_ICS_WEB_HOST -> 'server_bind'
        - LIBRUS_ICS_WEB_PORT or PORT -> 'server_port' (int)
        - LIBRUS_ICS_QUEUE_DELAY_MS -> 'queue_delay_seconds'
        - LIBRUS_ICS_TOKEN_LIFETIME_MINUTES -> 'token_lifetime_seconds'
        - LIBRUS_ICS_NEAR_REFRESH_MINUTES -> 'near_refresh_interval_seconds'
        - LIBRUS_ICS_FAR_REFRESH_HOURS -> 'far_refresh_interval_seconds'
        - LIBRUS_ICS_EVENTS_TTL_MINUTES -> 'events_cache_ttl_seconds'
        - LIBRUS_ICS_TIMEZONE -> 'timezone'
        - LIBRUS_ICS_EXCLUDED_SUBJECTS -> 'excluded_subjects' (semicolon separated)
        - LIBRUS_ICS_DEBUG -> 'debug_logging'

        Returns:
            Configuration dictionary with defaults for every unset key
        """
        cfg: dict[str, Any] = dict(DEFAULT_CONFIG)
        cfg["excluded_subjects"] = list(DEFAULT_EXCLUDED_SUBJECTS)

        login = _first_env("LIBRUS_LOGIN", "LOGIN")
        if login:
            cfg["login"] = login

        password = _first_env("LIBRUS_PASSWORD", "PASSWORD")
        if password:
            cfg["password"] = password

        host = os.environ.get("LIBRUS_ICS_WEB_HOST")
        if host:
            cfg["server_bind"] = host

        port = _first_env("LIBRUS_ICS_WEB_PORT", "PORT")
        if port:
            try:
                cfg["server_port"] = int(port)
            except ValueError:
                logger.warning("Invalid LIBRUS_ICS_WEB_PORT=%r; ignoring", port)

        scaled_numbers = (
            ("LIBRUS_ICS_QUEUE_DELAY_MS", "queue_delay_seconds", 0.001),
            ("LIBRUS_ICS_TOKEN_LIFETIME_MINUTES", "token_lifetime_seconds", 60.0),
            ("LIBRUS_ICS_NEAR_REFRESH_MINUTES", "near_refresh_interval_seconds", 60.0),
            ("LIBRUS_ICS_FAR_REFRESH_HOURS", "far_refresh_interval_seconds", 3600.0),
            ("LIBRUS_ICS_EVENTS_TTL_MINUTES", "events_cache_ttl_seconds", 60.0),
        )
        for env_name, key, scale in scaled_numbers:
            raw = os.environ.get(env_name)
            if raw:
                value = _parse_number(raw, env_name, scale)
                if value is not None:
                    cfg[key] = value

        tz_name = os.environ.get("LIBRUS_ICS_TIMEZONE")
        if tz_name:
            cfg["timezone"] = tz_name

        excluded = os.environ.get("LIBRUS_ICS_EXCLUDED_SUBJECTS")
        if excluded is not None:
            cfg["excluded_subjects"] = [s.strip() for s in excluded.split(";") if s.strip()]

        debug = os.environ.get("LIBRUS_ICS_DEBUG", "")
        if debug.strip().lower() in ("1", "true", "yes", "on"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        This is the main entry point for loading configuration.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        cfg = self.build_config_from_env()

        if not cfg.get("login") or not cfg.get("password"):
            logger.warning(
                "LIBRUS_LOGIN/LIBRUS_PASSWORD not set; upstream requests will fail to authenticate"
            )

        return cfg


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
