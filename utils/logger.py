"""Logging configuration for the relay hub."""

import logging
from pathlib import Path

from config import LOG_FILE

# Log file location
LOG_PATH = Path(LOG_FILE).expanduser()


def setup_logger(name: str = "relayhub", level: int = logging.DEBUG) -> logging.Logger:
    """Set up and return a logger that writes to file (not stdout to avoid Rich conflicts)."""
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(level)

    # File handler only - the console belongs to Rich output
    file_handler = logging.FileHandler(LOG_PATH, mode='a')
    file_handler.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler.setFormatter(formatter)

    logger.addHandler(file_handler)

    return logger


# Global logger instance
logger = setup_logger()


def log_exception(msg: str = "Exception occurred"):
    """Log an exception with full traceback."""
    logger.exception(msg)
