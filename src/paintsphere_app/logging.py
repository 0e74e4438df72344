"""Logging configuration helpers."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from loguru import logger

_CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}"


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure loguru with a friendly console sink and an optional rotating file."""
    logger.remove()
    logger.add(
        sink=lambda msg: print(msg, end=""),
        level=level,
        format=_CONSOLE_FORMAT,
    )
    if log_file is not None:
        logger.add(
            str(log_file),
            level="DEBUG",
            rotation="10 MB",
            retention=5,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
        )
