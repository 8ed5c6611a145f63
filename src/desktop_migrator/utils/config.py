#!/usr/bin/env python3
"""
Configuration module for Desktop Migrator

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

import os
import json
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

APP_NAME = "desktop-migrator"

BLUEFIN_BREWFILE_URL = ("https://raw.githubusercontent.com/projectbluefin/common/main/"
                        "system_files/bluefin/usr/share/ublue-os/homebrew/system-flatpaks.Brewfile")
AURORA_BREWFILE_URL = ("https://raw.githubusercontent.com/get-aurora-dev/common/main/"
                       "system_files/shared/usr/share/ublue-os/homebrew/system-flatpaks.Brewfile")


def _xdg_dir(env_var: str, fallback: str) -> str:
    return os.environ.get(env_var) or os.path.expanduser(fallback)


def default_config() -> Dict[str, Any]:
    """Default configuration values"""
    return {
        "backup_base_dir": os.path.expanduser("~"),
        "backup_label": "config-migration-backup",
        "cache_dir": os.path.join(_xdg_dir("XDG_CACHE_HOME", "~/.cache"), APP_NAME),
        "cache_expiry_hours": 24,
        "fetch_timeout": 30,
        "tool_timeout": 30,
        "flatpak_remote": "flathub",
        "catalog_urls": {
            "gnome": BLUEFIN_BREWFILE_URL,
            "kde": AURORA_BREWFILE_URL,
        },
    }


class Config:
    """Configuration manager for Desktop Migrator"""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize the configuration manager

        Args:
            config_file: Explicit configuration file, defaults to the XDG location
        """
        self.config_file = config_file or os.path.join(
            _xdg_dir("XDG_CONFIG_HOME", "~/.config"), APP_NAME, "config.json")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, overlaying the defaults"""
        config = default_config()

        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, 'r') as f:
                    stored = json.load(f)
                if isinstance(stored, dict):
                    config.update(stored)
                logger.info(f"Loaded configuration from {self.config_file}")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading configuration: {e}")

        return config

    def _save_config(self, config: Dict[str, Any]) -> bool:
        """Save configuration to file"""
        try:
            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(self.config_file, 'w') as f:
                json.dump(config, f, indent=2)
            logger.info(f"Saved configuration to {self.config_file}")
            return True
        except IOError as e:
            logger.error(f"Error saving configuration: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value"""
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> bool:
        """Set a configuration value"""
        self.config[key] = value
        return self._save_config(self.config)

    def get_backup_base_dir(self) -> str:
        """Directory under which backup sessions are created"""
        return os.path.expanduser(self.config.get("backup_base_dir") or "~")

    def get_cache_dir(self) -> str:
        return os.path.expanduser(self.config["cache_dir"])

    def get_cache_expiry_seconds(self) -> int:
        return int(float(self.config.get("cache_expiry_hours", 24)) * 60 * 60)

    def get_catalog_url(self, de: str) -> Optional[str]:
        """Upstream catalog URL for a desktop environment"""
        return self.config.get("catalog_urls", {}).get(de)


# Create singleton instance
config = Config()
