"""Logging setup and the log_* helpers used by the app layer.

Library modules log through logging.getLogger(__name__); setup_logging wires
those records (and the helpers below) to a colored console handler.
"""

import logging
import sys
from typing import Optional

APP_LOGGER_NAME = "recordos"

_logger = logging.getLogger(APP_LOGGER_NAME)


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Attach console (and optional file) handlers to the recordos logger.

    Calling it again only updates the level.
    """

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    _logger.setLevel(numeric_level)

    if not _logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            ColoredFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        )
        _logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
            _logger.addHandler(file_handler)

    for handler in _logger.handlers:
        handler.setLevel(numeric_level)

    return _logger


def log_debug(msg: str) -> None:
    _logger.debug(msg)


def log_info(msg: str) -> None:
    _logger.info(msg)


def log_success(msg: str) -> None:
    _logger.info(f"✅ {msg}")


def log_warning(msg: str) -> None:
    _logger.warning(msg)


def log_error(msg: str, exc_info: bool = False) -> None:
    _logger.error(msg, exc_info=exc_info)
