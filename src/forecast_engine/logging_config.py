"""Logging setup for the forecast-engine CLI.

Handlers are attached to the ``forecast_engine`` package logger, not the
root logger, so embedding applications keep control of their own logging.
Calling ``configure_logging()`` again only adjusts the level.
"""

import logging
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER = "forecast_engine"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """Attach a stderr handler (and optionally a file handler) once.

    Args:
        level: Level for the package logger
        log_file: Optional path of a log file to append to

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if log_file:
        path = Path(log_file)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(path, mode="a")
        except OSError as e:
            logger.warning(f"Cannot open log file {path}: {e}")
        else:
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    return logger
