"""
Logger setup shared by every paperscout module.
"""
import logging
import sys
from typing import Optional

from paperscout.configs.app_configs import LOG_FORMAT
from paperscout.configs.app_configs import LOG_LEVEL


PACKAGE_LOGGER_NAME = "paperscout"

_LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def get_log_level_from_str(log_level_str: str = LOG_LEVEL) -> int:
    return _LOG_LEVELS.get(log_level_str.lower(), logging.INFO)


def setup_logger(
    name: Optional[str] = None,
    log_level: Optional[int] = None,
) -> logging.Logger:
    """Return a configured logger.

    Modules call ``setup_logger()`` at import time and share the package
    logger unless they pass a name of their own.
    """
    logger = logging.getLogger(name or PACKAGE_LOGGER_NAME)

    # Handlers are attached once per logger name
    if logger.handlers:
        return logger

    logger.setLevel(log_level if log_level is not None else get_log_level_from_str())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False

    return logger
