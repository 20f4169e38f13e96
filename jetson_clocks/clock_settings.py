"""
Jetson Clocks Settings Management
JSON settings with defaults, validation and environment overrides
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = "~/.config/jetson_clocks"
SETTINGS_FILE_NAME = "jetson_clocks_settings.json"
DEFAULT_SNAPSHOT_PATH = "~/.jetson_clocks_snapshot.json"

# Environment variable -> setting key
ENVIRONMENT_OVERRIDES = {
    "JETSON_CLOCKS_ROOT": "sysfs_root",
    "JETSON_CLOCKS_SNAPSHOT": "snapshot_path",
    "JETSON_CLOCKS_LOG_LEVEL": "log_level",
}


class ClocksSettings:
    """Centralized settings management for jetson_clocks"""

    def __init__(self, config_dir: Optional[str] = None):
        """Initialize settings manager"""
        self.config_dir = Path(config_dir or DEFAULT_CONFIG_DIR).expanduser()
        self.config_file = self.config_dir / SETTINGS_FILE_NAME
        self.settings_cache = {}

        self._load_settings()
        self._apply_environment()

    def _load_settings(self) -> None:
        """Load settings from file, falling back to defaults"""
        self.settings_cache = self._get_default_settings()
        if not self.config_file.exists():
            return

        try:
            with open(self.config_file, 'r') as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load settings from {self.config_file}: {e}")
            return

        if not isinstance(stored, dict):
            logger.error(f"Ignoring settings file {self.config_file}: not a JSON object")
            return

        for key, value in stored.items():
            if self.validate_setting(key, value):
                self.settings_cache[key] = value
            else:
                logger.warning(f"Skipping invalid setting: {key}={value}")
        logger.debug(f"Loaded settings from {self.config_file}")

    def _apply_environment(self) -> None:
        for variable, key in ENVIRONMENT_OVERRIDES.items():
            value = os.environ.get(variable)
            if value:
                self.settings_cache[key] = value

    def _save_settings(self) -> bool:
        """Save settings to file"""
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w') as f:
                json.dump(self.settings_cache, f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")
            return False

    def _get_default_settings(self) -> Dict[str, Any]:
        """Get default settings configuration"""
        return {
            "sysfs_root": "/",
            "snapshot_path": DEFAULT_SNAPSHOT_PATH,
            "log_level": "info",
            "log_file": "",
            "confirm_overwrite": True,
        }

    def validate_setting(self, key: str, value: Any) -> bool:
        """Validate a setting value"""
        validators = {
            "sysfs_root": lambda v: isinstance(v, str) and v != "",
            "snapshot_path": lambda v: isinstance(v, str) and v != "",
            "log_level": lambda v: v in ["debug", "info", "warning", "error", "critical"],
            "log_file": lambda v: isinstance(v, str),
            "confirm_overwrite": lambda v: isinstance(v, bool),
        }

        if key in validators:
            return validators[key](value)

        return True  # No validation for unknown settings

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value"""
        return self.settings_cache.get(key, default)

    def set(self, key: str, value: Any) -> bool:
        """Set a setting value and persist it"""
        if not self.validate_setting(key, value):
            logger.error(f"Invalid value for setting {key}: {value!r}")
            return False
        self.settings_cache[key] = value
        return self._save_settings()

    def get_all(self) -> Dict[str, Any]:
        """Get all settings"""
        return self.settings_cache.copy()

    def reset_to_defaults(self) -> bool:
        """Reset all settings to defaults"""
        self.settings_cache = self._get_default_settings()
        return self._save_settings()

    @property
    def sysfs_root(self) -> str:
        return self.get("sysfs_root")

    @property
    def snapshot_path(self) -> Path:
        return Path(self.get("snapshot_path")).expanduser()

    @property
    def log_level(self) -> str:
        return self.get("log_level")
