"""Logging for the ``bookkeeper`` package.

Modules log through ``get_logger(__name__)`` and never attach handlers. The
CLI calls ``configure_logging`` once at startup; until then the package
logger only carries a ``NullHandler``.
"""

import logging
import os
from typing import Optional

_PKG_LOGGER_NAME = "bookkeeper"
_LEVEL_ENV = "BOOKKEEPER_LOG_LEVEL"
_CONFIGURED = False


def _resolve_level(level: Optional[int]) -> int:
    """Explicit level, else BOOKKEEPER_LOG_LEVEL by name, else WARNING."""
    if level is not None:
        return level
    numeric = logging.getLevelName(os.getenv(_LEVEL_ENV, "").strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING


def configure_logging(level: Optional[int] = None) -> None:
    """Send package log records to stderr. Later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    logger.setLevel(_resolve_level(level))
    logger.addHandler(handler)
    # Records stop here; the root logger never sees them.
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
