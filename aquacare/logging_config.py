"""Logging setup shared by the entry point and tests."""

from __future__ import annotations

import logging
from typing import Optional

from .config import get_settings

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[str] = None, format: str = DEFAULT_FORMAT) -> logging.Logger:
    """Configure the root handler and return the ``aquacare`` logger.

    Falls back to the ``log_level`` setting when ``level`` is not given.
    """
    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=format, datefmt=DEFAULT_DATEFMT)
    app_logger = logging.getLogger("aquacare")
    app_logger.setLevel(resolved_level)
    app_logger.debug("Logging configured at %s", resolved_level)
    return app_logger
