"""
Logging utilities.

Diagnostics go to stderr so that the numeric tables written by the analysis
routines on stdout stay machine-readable.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from typing import Optional


# =============================================================================
# Logger Setup
# =============================================================================

_loggers: dict = {}

ROOT_LOGGER = "aoanalysis"


def get_logger(
    name: str = ROOT_LOGGER,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Get a configured logger.

    Args:
        name: Logger name
        level: Logging level
        log_file: Optional file path for logging

    Returns:
        Configured logger instance
    """
    # Module loggers hand their records to the package logger
    if name.startswith(ROOT_LOGGER + "."):
        get_logger(ROOT_LOGGER)
        return logging.getLogger(name)

    if name in _loggers:
        logger = _loggers[name]
        if log_file:
            _add_file_handler(logger, log_file, level)
        return logger

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers = []
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(console_handler)

    if log_file:
        _add_file_handler(logger, log_file, level)

    _loggers[name] = logger
    return logger


def set_level(level: int):
    """Change the level of the package logger and its handlers."""
    logger = get_logger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def _add_file_handler(logger: logging.Logger, log_file: str, level: int):
    log_file = os.path.abspath(log_file)
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_file:
            return

    os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)


class Timer:
    """
    Context manager for timing code blocks with logging.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or get_logger()
        self.start_time = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.info(f"[{self.name}] Starting...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()
        self.logger.info(f"[{self.name}] Completed in {self.elapsed:.2f}s")
        return False


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Simple progress tracker logging every tenth of the work.
    """

    def __init__(self, total: int, name: str = "Progress", logger: Optional[logging.Logger] = None):
        self.total = total
        self.name = name
        self.current = 0
        self.logger = logger or get_logger()

    def update(self, n: int = 1):
        """Update progress by n steps."""
        self.current += n

        if self.total > 0 and self.current % max(1, self.total // 10) == 0:
            pct = 100 * self.current / self.total
            self.logger.info(f"[{self.name}] {pct:.0f}% ({self.current}/{self.total})")
