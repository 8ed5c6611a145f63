#!/usr/bin/env python3
"""
Flatpak package manager implementation

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

import subprocess
import logging
from typing import List, Optional

from ..errors import ToolUnavailableError
from ..utils.runner import Runner
from .base import PackageManager, Package

logger = logging.getLogger(__name__)

# Installs download runtimes and may take a long time
CHANGE_TIMEOUT = 30 * 60


class FlatpakPackageManager(PackageManager):
    """Package manager for Flatpak applications"""

    def __init__(self, runner: Runner, remote: str = "flathub"):
        self.remote = remote
        super().__init__('flatpak', runner)

    def list_installed_packages(self) -> List[Package]:
        """List all installed flatpak applications"""
        if not self.available:
            logger.warning("Flatpak package manager not available")
            return []

        try:
            result = self._query(['list', '--app', '--columns=application'])
        except (subprocess.SubprocessError, ToolUnavailableError) as e:
            logger.error(f"Error listing installed flatpak packages: {e}")
            return []

        if result.returncode != 0:
            logger.error(f"Error listing installed flatpak packages: {result.stderr.strip()}")
            return []

        packages = []
        for line in result.stdout.splitlines():
            app_id = line.strip()
            # Older flatpak versions print a header row
            if not app_id or app_id == "Application ID":
                continue
            packages.append(Package(name=app_id, source='flatpak'))
        return packages

    def list_remotes(self) -> List[str]:
        if not self.available:
            return []
        try:
            result = self._query(['remotes', '--columns=name'])
        except (subprocess.SubprocessError, ToolUnavailableError) as e:
            logger.error(f"Error listing flatpak remotes: {e}")
            return []
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def has_remote(self, remote: Optional[str] = None) -> bool:
        """Check if the remote used for installs is configured"""
        return (remote or self.remote) in self.list_remotes()

    def install_package(self, package_name: str) -> bool:
        """Install a flatpak application from the configured remote"""
        if not self.available:
            logger.error("Flatpak package manager not available")
            return False

        try:
            result = self._change(['install', '-y', self.remote, package_name], timeout=CHANGE_TIMEOUT)
        except (subprocess.SubprocessError, ToolUnavailableError) as e:
            logger.error(f"Error installing flatpak package {package_name}: {e}")
            return False

        if result.returncode != 0:
            logger.error(f"Error installing flatpak package {package_name}: {result.stderr.strip()}")
            return False
        return True

    def remove_package(self, package_name: str) -> bool:
        """Uninstall a flatpak application"""
        if not self.available:
            logger.error("Flatpak package manager not available")
            return False

        try:
            result = self._change(['uninstall', '-y', package_name], timeout=CHANGE_TIMEOUT)
        except (subprocess.SubprocessError, ToolUnavailableError) as e:
            logger.error(f"Error removing flatpak package {package_name}: {e}")
            return False

        if result.returncode != 0:
            logger.error(f"Error removing flatpak package {package_name}: {result.stderr.strip()}")
            return False
        return True
