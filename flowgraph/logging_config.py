"""Logging setup shared by the graph engine and its HTTP API.

Engine modules log through ``logging.getLogger(__name__)``, so everything
under ``flowgraph.engine`` lands on the ``flowgraph`` logger configured here.
"""
from __future__ import annotations

import logging

from .config import LOG_DIR, LOG_LEVEL

_FILE_FORMAT = "%(asctime)s [%(name)s] [%(levelname)s] %(message)s"
_CONSOLE_FORMAT = "%(asctime)s [%(name)s] %(message)s"

# Names already given handlers
_configured_loggers: set[str] = set()


def _level() -> int:
    level = getattr(logging, LOG_LEVEL.upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str, filename: str) -> logging.Logger:
    """Attach a file handler and a console handler to ``name`` once.

    Args:
        name: Logger name ('flowgraph' for the engine, 'api' for routes)
        filename: File under LOG_DIR (e.g., 'engine.log')

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    level = _level()

    logger.setLevel(level)
    logger.propagate = False

    file_handler = logging.FileHandler(LOG_DIR / filename, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    _configured_loggers.add(name)
    return logger


def get_engine_logger() -> logging.Logger:
    """Parent logger of every flowgraph.engine module."""
    return setup_logger("flowgraph", "engine.log")


def get_api_logger() -> logging.Logger:
    """Logger for route handlers."""
    return setup_logger("api", "api.log")
