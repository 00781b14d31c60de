"""Logging helpers shared by the API, services and scripts."""
import logging
import sys
from typing import Optional

from portal.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_configured = False


class ContextFormatter(logging.Formatter):
    """Formatter that appends the ``extra`` context as ``key=value`` pairs."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        message = super().formatMessage(record)
        context = " ".join(
            f"{key}={value}" for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        return f"{message} {context}" if context else message


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    root = logging.getLogger("portal")
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())
    root.propagate = False
    _configured = True


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Return a logger under the ``portal`` hierarchy.

    Modules outside the package (``main``, scripts) are nested under
    ``portal`` so they share one handler.
    """
    _configure_root()
    if not name.startswith("portal"):
        name = f"portal.{name}"
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(level.upper())
    return logger
