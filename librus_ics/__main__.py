"""Command-line entry for librus_ics."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the librus_ics CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="librus_ics",
        description="Librus Synergia timetable and homework served as iCalendar feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m librus_ics                    # Start server on default port (3000)
  python -m librus_ics --port 8080        # Start server on port 8080
  python -m librus_ics --debug            # Verbose logging
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 3000, or from LIBRUS_ICS_WEB_PORT/PORT)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for librus_ics modules",
    )

    return parser


def main() -> NoReturn:
    """Run the librus_ics CLI."""
    parser = _create_parser()
    args = parser.parse_args()

    try:
        run_server(args)
    except Exception:
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
