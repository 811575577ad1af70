"""
Logging configuration
"""
import logging
import sys
from alitools.config import get_settings

settings = get_settings()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _level() -> int:
    if settings.DEBUG:
        return logging.DEBUG
    level = getattr(logging, settings.LOG_LEVEL.upper(), None)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance"""
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(LOG_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(_level())
    return logger


def configure_logging() -> None:
    """Route the package loggers through one stdout handler (used by CLI scripts)."""
    get_logger("alitools")
    logging.getLogger("alitools").propagate = False
