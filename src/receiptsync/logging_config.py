"""structlog setup shared by the CLI, the server and the library.

Call :func:`configure_logging` once at process start; modules grab a
logger with :func:`get_logger`. Set RECEIPTSYNC_DEBUG=1 for debug output.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

ENV_DEBUG = "RECEIPTSYNC_DEBUG"


def _debug_enabled() -> bool:
    return os.environ.get(ENV_DEBUG, "").lower() in ("true", "1", "yes", "on")


def configure_logging(debug: bool | None = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        debug: Force debug level on/off. None = read RECEIPTSYNC_DEBUG.
    """
    if debug is None:
        debug = _debug_enabled()
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )
    # aiohttp access logs are noisy at info
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger under the receiptsync namespace."""
    return structlog.get_logger(f"receiptsync.{name}")
