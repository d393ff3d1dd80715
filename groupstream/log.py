from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def build_logger(name: str, path: Optional[str | Path] = None, *, level: int = logging.INFO) -> logging.Logger:
    """Named logger; with a path it writes only to its own rotating file."""
    logger = logging.getLogger(name)
    if path is None:
        return logger
    destination = Path(path)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        stale.close()
        logger.removeHandler(stale)
    destination.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(destination, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        try:
            handler.flush()
            handler.close()
        finally:
            logger.removeHandler(handler)
    logger.propagate = True
