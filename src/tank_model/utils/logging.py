"""Logging setup for the tank model calibration tools."""

from __future__ import annotations

import logging
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: int | str = logging.INFO, log_file: Optional[str] = None) -> None:
    """Configure the root logger.

    Parameters
    ----------
    level:
        Logging level, either numeric or a name such as ``"DEBUG"``.
    log_file:
        Optional path to a log file. Records are written there in addition
        to the console; parent directories are created on demand.
    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT, handlers=handlers, force=True)


__all__ = ["configure_logging"]
