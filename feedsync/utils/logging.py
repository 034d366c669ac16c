"""Logging configuration for FeedSync."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from feedsync.utils.config import APP_NAME, LOG_FILE, LOG_LEVEL

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    level: Optional[int] = None,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Configure and return the application logger.

    Safe to call more than once; handlers are only installed the first time.

    Args:
        level: Logging level (default: FEEDSYNC_LOG_LEVEL or INFO)
        log_file: Rotating log file (default: from config)
        console: Also log to stdout

    Returns:
        Configured logger instance
    """
    if level is None:
        level = logging.getLevelName(LOG_LEVEL)
        if not isinstance(level, int):
            level = logging.INFO
    if log_file is None:
        log_file = LOG_FILE

    logger = logging.getLogger(APP_NAME)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(max(level, logging.INFO))
        console_handler.setFormatter(logging.Formatter(fmt="%(levelname)-8s | %(message)s"))
        logger.addHandler(console_handler)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the application logger.

    Args:
        name: Module name, usually __name__ (default: the application logger)
    """
    if name is None:
        return logging.getLogger(APP_NAME)
    return logging.getLogger(f"{APP_NAME}.{name}")
