from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "restic_backup"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Send package log records to stdout and, when possible, append them to ``log_file``.

    Calling this again replaces the handlers installed by the previous call.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level.upper())
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is None:
        return logger

    if not log_file.parent.is_dir():
        try:
            log_file.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Log directory %s does not exist and could not be created: %s", log_file.parent, exc)
            logger.warning("Logging to stdout only")
            return logger
        logger.info("Created log directory: %s", log_file.parent)

    try:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as exc:
        logger.warning("Unable to open log file %s: %s", log_file, exc)
        logger.warning("Logging to stdout only")
        return logger

    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger
