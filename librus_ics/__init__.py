"""librus_ics - Librus Synergia timetable and homework as iCalendar feeds.

Keeps imports light so ``python -m librus_ics --help`` does not pull in the
server stack.
"""

__version__ = "1.0.0"

from typing import Optional


def run_server(args: Optional[object] = None) -> None:
    """Start the librus_ics server.

    Args:
        args: Optional command line namespace with ``port`` and ``debug``

    Behavior:
    - Initialize console logging early using LIBRUS_ICS_LOG_LEVEL (env) if present.
    - Load configuration from the environment and ``.env``.
    - Apply command line overrides, then block in ``start_server``.
    """
    import logging
    import os

    from librus_ics.core.logging_config import init_console_logging

    init_console_logging(os.environ.get("LIBRUS_ICS_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from librus_ics.api import server

    cfg = server._build_default_config_from_env()  # noqa: SLF001

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            try:
                cfg["server_port"] = int(port)
                logger.debug("Applied command line port override: %d", cfg["server_port"])
            except (ValueError, TypeError) as e:
                logger.warning("Invalid port value from command line '%s': %s", port, e)
        if getattr(args, "debug", False):
            cfg["debug_logging"] = True

    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: cfg.get(k) for k in ("server_bind", "server_port", "timezone", "debug_logging")},
    )

    server.start_server(cfg)
