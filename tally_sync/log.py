"""
Logging setup for the sync engine.

All modules log through loguru's shared logger; this only decides where the
records go.
"""
from __future__ import annotations
import sys
from typing import Optional
from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """
    Send log records to stderr, and to a rotating file when log_file is set.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )
