"""Application logging utilities."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from . import config

_LOG_FILE_NAME = "upload-challenge.log"


def configure_logging(log_dir: Optional[Path] = None, level: Optional[str] = None) -> logging.Logger:
    """Configure a rotating log file plus console output for the ``challenge`` logger."""
    logger = logging.getLogger("challenge")
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level or config.LOG_LEVEL, logging.INFO))

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_directory = Path(log_dir or config.LOG_DIR)
    try:
        log_directory.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_directory / _LOG_FILE_NAME,
            maxBytes=config.LOG_MAX_BYTES,
            backupCount=config.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        handler = None
        logger.warning("File logging disabled (%s)", exc)
    if handler is not None:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if handler is not None:
        logger.info("Logger initialised; logs available at %s", handler.baseFilename)
    return logger
