"""
CoachBot - Logging
===================
Logger factory shared by every CoachBot module.

All ``coachbot.*`` loggers hang off one package logger that owns the
single stdout handler, so a module logger never gets a handler of its
own and nothing is printed twice.  Loggers outside the package (e.g.
``__main__`` in a script) are configured the same way on first use.

Verbosity follows ``settings.ENV``:
  • ``"dev"``  → DEBUG
  • ``"prod"`` → WARNING

Usage:
    from coachbot.src.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("[RETRIEVE] coach=%s → %d result(s)", coach_id, n)
"""

import logging
import sys

from coachbot.config.settings import settings

PACKAGE_LOGGER = "coachbot"

_ENV_LEVELS = {"dev": logging.DEBUG, "prod": logging.WARNING}
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _attach_handler(logger: logging.Logger, level: int) -> None:
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return the logger for *name*, configuring its handler on first use.

    Args:
        name:  Typically ``__name__`` of the calling module.
        level: Explicit level override for this logger only.

    Returns:
        The ``logging.Logger``; ``coachbot.*`` names emit through the
        package logger.
    """
    default_level = _ENV_LEVELS.get(settings.ENV, logging.INFO)
    logger = logging.getLogger(name)

    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        _attach_handler(logging.getLogger(PACKAGE_LOGGER), default_level)
    else:
        _attach_handler(logger, default_level)

    if level is not None:
        logger.setLevel(level)
    return logger
