"""
Logging setup for whalefeed.

Log records go to stderr through Rich; stdout is reserved for JSONL output
of `whalefeed watch`.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

# Chatty third-party loggers kept at WARNING unless DEBUG is requested.
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger once.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL

    Returns:
        The root logger.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        log_time_format="%Y-%m-%d %H:%M:%S",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    return root_logger
