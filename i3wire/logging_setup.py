"""
Logging infrastructure for i3wire.

Provides file-based logging with rotation and colored console output.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import (
    LOG_FILE,
    LOG_MAX_BYTES,
    LOG_BACKUP_COUNT,
    LOG_DIR,
)


# Module-level logger
_logger: Optional[logging.Logger] = None


class ColorFormatter(logging.Formatter):
    """
    Formatter that adds colors for terminal output.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        levelname = record.levelname
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(
    log_to_file: bool = False,
    log_to_console: bool = True,
    log_level: str = "INFO",
) -> logging.Logger:
    """
    Configure the logging system.

    Calling this again replaces the handlers installed by the previous call.

    Args:
        log_to_file: Enable rotating file logging
        log_to_console: Enable colored stderr logging
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured logger instance
    """
    global _logger

    level = getattr(logging, log_level.upper(), logging.INFO)

    _logger = logging.getLogger("i3wire")
    _logger.setLevel(level)
    _logger.propagate = False

    for handler in list(_logger.handlers):
        _logger.removeHandler(handler)
        handler.close()

    # File handler with rotation
    if log_to_file:
        Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # Capture everything to file
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        _logger.addHandler(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        if sys.stderr.isatty():
            console_handler.setFormatter(ColorFormatter("%(levelname)s %(message)s"))
        else:
            console_handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        _logger.addHandler(console_handler)

    return _logger


def get_logger() -> logging.Logger:
    """Get the i3wire logger, initializing if necessary."""
    global _logger
    if _logger is None:
        _logger = setup_logging(log_to_file=False, log_to_console=True, log_level="WARNING")
    return _logger


def log(msg: str) -> None:
    """Log an informational message."""
    get_logger().info(msg)


def log_debug(msg: str) -> None:
    """Log a debug message."""
    get_logger().debug(msg)


def log_warning(msg: str) -> None:
    """Log a warning message."""
    get_logger().warning(msg)


def log_error(msg: str) -> None:
    """Log an error message."""
    get_logger().error(msg)


def format_block(title: str, lines: list[str]) -> str:
    """
    Format a titled block for log output.

    Args:
        title: Block title (displayed in brackets)
        lines: Content lines (will be indented)

    Returns:
        Formatted multi-line string
    """
    pad = "  "
    return "\n".join([f"[{title}]", *[pad + ln for ln in lines]])
