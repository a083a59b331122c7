"""Logging configuration for the project."""
import logging
import sys

from cellpatch.config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(name: str = "cellpatch", level: str = "INFO" if not config.debug else "DEBUG") -> logging.Logger:
    """Configure and return a logger with a standard format."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    # Avoid adding handlers multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, level))
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
