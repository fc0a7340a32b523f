"""Logging configuration for image-library."""

import logging
import sys
from pathlib import Path
from typing import Optional

APP_LOGGER_NAME = "image_library"


def setup_logger(
    name: str = APP_LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up a logger with console and optional file output.

    Module loggers (``image_library.*``) get no handlers of their own; they
    propagate to the application logger, which is configured on first use.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path for log output

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if name.startswith(APP_LOGGER_NAME + "."):
        app_logger = logging.getLogger(APP_LOGGER_NAME)
        if not app_logger.handlers:
            _configure(app_logger, level, log_file)
        return logger

    _configure(logger, level, log_file)
    return logger


def _configure(
    logger: logging.Logger, level: int, log_file: Optional[Path]
) -> None:
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt="%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # More verbose in file
        file_format = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)
