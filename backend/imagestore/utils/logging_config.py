# backend/imagestore/utils/logging_config.py
"""
Logging setup.

Every module logs through ``loguru.logger``; this module only decides where
the records go. Console output goes to stderr, and a rotating file sink is
added when ``log_file`` is configured.
"""

import sys
from typing import Optional

from loguru import logger

from ..enums import LogLevel

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time} | {level} | {name}:{function}:{line} - {message}"


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "14 days",
) -> None:
    """Replace loguru's default sink with the application's sinks."""
    logger.remove()
    logger.add(sys.stderr, level=level.value, format=CONSOLE_FORMAT, enqueue=False)
    if log_file:
        logger.add(
            log_file,
            level=level.value,
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            enqueue=True,
        )
    logger.debug(f"Logging configured at {level.value}" + (f", file={log_file}" if log_file else ""))
