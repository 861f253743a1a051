"""Process-wide logging setup.

Modules call ``get_logger(__name__)``; the root handler is installed once so
reloading modules in development does not duplicate output.
"""

from __future__ import annotations

import logging

from .config import settings

_LOGGER_INITIALISED = False


def configure_root_logger(level: str | int | None = None) -> None:
    global _LOGGER_INITIALISED
    if _LOGGER_INITIALISED:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level or settings.log_level)
    root_logger.addHandler(handler)
    _LOGGER_INITIALISED = True


def get_logger(name: str | None = None) -> logging.Logger:
    configure_root_logger()
    return logging.getLogger(name)
