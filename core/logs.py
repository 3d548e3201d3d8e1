from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import LOG_DIR


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def get_logger(name: str = "edupay.sync", filename: str = "sync.log", log_dir: Optional[Path] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        target_dir = Path(log_dir or LOG_DIR)
        target_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            target_dir / filename, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


__all__ = ["LOG_FORMAT", "get_logger"]
