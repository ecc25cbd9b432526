"""Logging setup for batch jobs that drive the analytics engine.

The library modules only ever call ``logging.getLogger(__name__)``; handlers
are installed by whoever runs the engine:

    from garden_analytics.logging_config import configure_logging

    configure_logging("DEBUG")
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
    format_string: str = DEFAULT_LOG_FORMAT,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name; defaults to $LOG_LEVEL, then INFO
        log_file: Optional path to also log to
        format_string: Log message format string
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()
    if level not in VALID_LOG_LEVELS:
        level = "INFO"

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=getattr(logging, level), format=format_string, handlers=handlers, force=True)

    # web3 logs every request at DEBUG
    logging.getLogger("web3").setLevel(max(logging.INFO, getattr(logging, level)))
    logging.getLogger("urllib3").setLevel(logging.WARNING)
