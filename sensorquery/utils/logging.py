"""
Logger hierarchy for sensorquery.

Everything the library logs goes through loggers below ``sensorquery``
(``sensorquery.utils.observer`` for ``LoggingObserver``, ``sensorquery.main``
for the command line). Nothing is attached on import; an application that
wants output calls ``setup_logging`` once, or configures the ``sensorquery``
logger itself.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "sensorquery"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    include_timestamp: bool = True
) -> logging.Logger:
    """
    Attach stdout (and optionally file) handlers to the ``sensorquery`` logger.

    Calling it again replaces the handlers instead of adding duplicates.
    Other loggers of the application are left alone.

    Args:
        level: Level name for the package logger, e.g. "DEBUG" to see every page fetched
        log_file: Also write records here; parent directories are created
        include_timestamp: Prefix records with the wall-clock time

    Returns:
        The ``sensorquery`` logger
    """
    if include_timestamp:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        formatter = logging.Formatter('%(name)s - %(levelname)s - %(message)s')

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` placed under ``sensorquery`` unless it already is."""
    if name != LOGGER_NAME and not name.startswith(LOGGER_NAME + "."):
        name = f"{LOGGER_NAME}.{name}"
    return logging.getLogger(name)
