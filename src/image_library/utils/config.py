"""Configuration management for image-library."""

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

from image_library.utils.logger import setup_logger

logger = setup_logger(__name__)


class Config:
    """Manages user configuration and settings."""

    DEFAULT_CONFIG_DIR = Path.home() / ".image-library"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"

    DEFAULT_SETTINGS = {
        "database_path": str(DEFAULT_CONFIG_DIR / "library.db"),
        "library_path": str(DEFAULT_CONFIG_DIR / "images"),
        "similarity_threshold": 10,  # Hamming distance over the 144-bit perceptual hash
        "log_file": None,
        "import": {"always_copy": False},
        "removal": {"use_recycle_bin": True},
    }

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to config file (default: ~/.image-library/config.json)
        """
        self.config_file = config_file or self.DEFAULT_CONFIG_FILE
        self.settings: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from file or create with defaults."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self.settings = json.load(f)
                logger.debug(f"Loaded configuration from {self.config_file}")
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid config file: {e}. Using defaults.")
                self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
        else:
            logger.info("No config file found. Creating with defaults.")
            self.settings = copy.deepcopy(self.DEFAULT_SETTINGS)
            self.save()

    def save(self) -> None:
        """Save configuration to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.settings, f, indent=2)
        logger.debug(f"Saved configuration to {self.config_file}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Keys missing from the loaded file fall back to the built-in default
        before ``default`` is used.

        Args:
            key: Configuration key (supports dot notation, e.g., 'removal.use_recycle_bin')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._lookup(self.settings, key)
        if value is None:
            value = self._lookup(self.DEFAULT_SETTINGS, key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split(".")
        target = self.settings
        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                target[k] = {}
            target = target[k]
        target[keys[-1]] = value
        self.save()

    @staticmethod
    def _lookup(settings: Dict[str, Any], key: str) -> Any:
        value: Any = settings
        for k in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(k)
            if value is None:
                return None
        return value

    def get_database_path(self) -> Path:
        """Get the SQLite database file path."""
        return Path(self.get("database_path")).expanduser()

    def get_library_dir(self) -> Path:
        """Get the directory that holds the imported images."""
        return Path(self.get("library_path")).expanduser()

    def get_similarity_threshold(self) -> int:
        """Get the maximum Hamming distance at which two images are related."""
        return int(self.get("similarity_threshold"))

    def get_log_file(self) -> Optional[Path]:
        """Get the optional log file path."""
        log_file = self.get("log_file")
        return Path(log_file).expanduser() if log_file else None
