"""
Logging setup for the studyprogress package.

Library modules only call logging.getLogger(__name__); the CLI calls
setup_logging() once so that records end up on stderr via rich.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "studyprogress"


def setup_logging(level: str | int = logging.WARNING) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logger.setLevel(level)

    # Calling twice (e.g. repeated main() in tests) must not duplicate output
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
            log_time_format="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    for h in logger.handlers:
        h.setLevel(level)
    return logger
