"""Asyncio HTTP server for the Librus calendar feeds.

This module provides the server core that:
- builds the application object graph (queue, session token, caches, scheduler)
- runs the refresh scheduler in the background (startup, near and far cycles)
- exposes GET /events, /calendar, /lessons and /api/health through aiohttp
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import Any

from aiohttp import web

from librus_ics.api.middleware import correlation_id_middleware
from librus_ics.api.routes import register_api_routes, register_feed_routes
from librus_ics.core.config_manager import ConfigManager, get_config_value
from librus_ics.core.dependencies import AppDependencies, DependencyContainer
from librus_ics.core.http_client import close_all_clients
from librus_ics.core.logging_config import configure_logging
from librus_ics.core.monitoring_logging import log_monitoring_event

logger = logging.getLogger(__name__)

APP_DEPS_KEY = web.AppKey("deps", AppDependencies)

MAX_PORT_ATTEMPTS = 10


def _build_default_config_from_env() -> dict[str, Any]:
    """Build configuration from the environment and an optional ``.env`` file."""
    return ConfigManager().load_full_config()


def _make_app(deps: AppDependencies) -> web.Application:
    """Create the aiohttp application with routes wired to ``deps``."""
    app = web.Application(middlewares=[correlation_id_middleware])
    app[APP_DEPS_KEY] = deps

    register_feed_routes(app, deps)
    register_api_routes(app, deps)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind the first free port starting at ``configured_port``."""
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                log_monitoring_event(
                    "server.startup.failure",
                    f"Failed to start server on {host}:{port}",
                    "CRITICAL",
                    component="server",
                    details={"host": host, "port": port, "error": str(e)},
                )
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning("Configured port %d was in use, using port %d instead", configured_port, port)
        return port

    last_port = configured_port + MAX_PORT_ATTEMPTS - 1
    log_monitoring_event(
        "server.startup.port_exhausted",
        f"No available port in range {configured_port}-{last_port}",
        "CRITICAL",
        component="server",
        details={"host": host, "configured_port": configured_port, "attempts": MAX_PORT_ATTEMPTS},
    )
    raise RuntimeError(f"No available port found in range {configured_port}-{last_port}")


async def _shutdown_deps(deps: AppDependencies) -> None:
    await deps.scheduler.close()
    await deps.queue.close()
    try:
        await close_all_clients()
        logger.debug("Shared HTTP clients cleaned up")
    except Exception as e:
        logger.warning("Error cleaning up shared HTTP clients: %s", e)


async def _serve(config: Any, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server and the refresh scheduler until signalled to stop.

    Args:
        config: Server configuration dict
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()
    deps = DependencyContainer.build_dependencies(config)

    logger.debug(
        "Creating web application. Config: %s",
        ", ".join(
            f"{k}={'<redacted>' if k in ('login', 'password') else v!r}" for k, v in config.items()
        ),
    )
    app = _make_app(deps)

    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", "0.0.0.0")  # nosec: B104 - override via env
    configured_port = int(get_config_value(config, "server_port", 3000))
    try:
        port = await _start_site(runner, host, configured_port)
    except Exception:
        await runner.cleanup()
        await _shutdown_deps(deps)
        raise

    logger.info("Server started successfully on %s:%d", host, port)
    log_monitoring_event(
        "server.startup.success",
        f"librus_ics server started on {host}:{port}",
        "DEBUG",
        component="server",
        details={"host": host, "port": port, "pid": os.getpid()},
    )

    scheduler_task = asyncio.create_task(deps.scheduler.run(stop_event), name="refresh-scheduler")

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")
    log_monitoring_event(
        "server.shutdown.start",
        "Server shutdown initiated",
        "DEBUG",
        component="server",
        details={"uptime_seconds": deps.health_tracker.get_uptime_seconds()},
    )

    scheduler_task.cancel()
    try:
        await scheduler_task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Scheduler task error during shutdown: %s", e)

    await runner.cleanup()
    await _shutdown_deps(deps)
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Blocks until SIGINT/SIGTERM is received.

    Args:
        config: dict with keys described in ``librus_ics.core.config_manager.DEFAULT_CONFIG``
    """
    debug_mode = bool(get_config_value(config, "debug_logging", False))
    configure_logging(debug_mode=debug_mode)
    logger.info("Logging configuration applied: debug_mode=%s", debug_mode)

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise
