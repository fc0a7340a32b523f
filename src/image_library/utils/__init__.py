"""Utility functions for configuration and logging."""

from image_library.utils.config import Config
from image_library.utils.logger import setup_logger

__all__ = ["Config", "setup_logger"]
