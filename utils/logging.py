"""
Logging utilities for the LiveSeries torrent service.
"""
import logging
import sys
from typing import Iterable, Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries which log every request at INFO level
NOISY_LOGGERS = ('urllib3', 'werkzeug')


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    log_file: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS
) -> logging.Logger:
    """
    Setup application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string
        log_file: Optional log file path
        quiet_loggers: Loggers limited to warnings unless running at DEBUG level

    Returns:
        Root logger instance
    """
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if numeric_level > logging.DEBUG:
        for name in quiet_loggers:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(name)
