"""Logging configuration."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days"
):
    """Set up the pipeline logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for a rotating log of each run
        rotation: Size or age at which the log file rotates
        retention: How long rotated files are kept

    Returns:
        Configured logger instance
    """
    logger.remove()

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level.upper(), colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            format=FILE_FORMAT,
            level=log_level.upper(),
            rotation=rotation,
            retention=retention,
        )

    return logger
