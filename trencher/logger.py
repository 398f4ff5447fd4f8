"""
Trencher — Logging Setup
=========================

What:  Configures stdlib logging for applications embedding Trencher.
How:   ``setup_logging()`` installs a stdout handler with a level-coloured
       formatter on the root logger; ``set_log_level()`` adjusts the
       ``trencher`` logger at runtime.
When:  ``setup_logging()`` runs once at startup (``create_app`` lifespan
       calls it). Library modules only ever call ``logging.getLogger``.

Format:
    10/19/2026, 14:03:11 [ERROR] trencher.exceptions: 422 Unprocessable Entity ...
"""

import logging
import sys
from datetime import datetime
from typing import Optional, Union

from trencher.config import settings

LIBRARY_LOGGER = "trencher"

LEVEL_COLORS = {
    "DEBUG": "\x1b[32m",     # green
    "INFO": "\x1b[34m",      # blue
    "WARNING": "\x1b[33m",   # yellow
    "ERROR": "\x1b[31m",     # red
    "CRITICAL": "\x1b[35m",  # magenta
}
RESET_COLOR = "\x1b[0m"


class ColoredLevelFormatter(logging.Formatter):
    """Formatter that wraps the level name in an ANSI colour."""

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%m/%d/%Y, %H:%M:%S")
        level = record.levelname
        if self.use_colors:
            level = f"{LEVEL_COLORS.get(level, '')}{level}{RESET_COLOR}"
        line = f"{timestamp} [{level}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def setup_logging(level: Optional[Union[str, int]] = None, use_colors: Optional[bool] = None) -> None:
    """
    Configure logging for the whole process.

    Args:
        level:      Overrides ``settings.log_level``.
        use_colors: Defaults to True when stdout is a terminal.
    """
    if use_colors is None:
        use_colors = sys.stdout.isatty()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredLevelFormatter(use_colors=use_colors))

    resolved = _resolve_level(level if level is not None else settings.log_level)
    logging.basicConfig(level=resolved, handlers=[handler], force=True)
    logging.getLogger(LIBRARY_LOGGER).setLevel(resolved)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_log_level(level: Union[str, int]) -> None:
    """Change the verbosity of every ``trencher.*`` logger."""
    logging.getLogger(LIBRARY_LOGGER).setLevel(_resolve_level(level))
