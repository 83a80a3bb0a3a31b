"""Logging setup.

All modules log through ``from loguru import logger``; this module only
replaces the default sink according to the settings.
"""

import sys

from loguru import logger

from letter_archive.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings) -> None:
    """Install the application log sink.

    Args:
        settings: Settings providing LOG_LEVEL and LOG_JSON
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format=LOG_FORMAT,
        serialize=settings.log_json,
        backtrace=not settings.is_production,
        diagnose=not settings.is_production,
    )
