#!/usr/bin/env python3
"""
Base package manager abstract class and interfaces

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

from abc import ABC, abstractmethod
from typing import List, Optional, Set
import subprocess
import logging

from ..utils.runner import Runner

logger = logging.getLogger(__name__)


class Package:
    """Represents a single installed application"""

    def __init__(self, name: str, source: str = ""):
        self.name = name
        self.source = source  # flatpak, ...

    def __str__(self) -> str:
        return f"{self.name} [{self.source}]"


class PackageManager(ABC):
    """Base class for package managers driven through a Runner"""

    def __init__(self, name: str, runner: Runner):
        self.name = name
        self.runner = runner
        self.available = self._check_available()

    def _check_available(self) -> bool:
        """Check if this package manager is available on the system"""
        return self.runner.has_tool(self.name)

    def _query(self, args: List[str]) -> subprocess.CompletedProcess:
        """Run a read-only command, also in dry-run mode"""
        return self.runner.capture([self.name] + args)

    def _change(self, args: List[str], timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        """Run a command that modifies the system, previewed in dry-run mode"""
        return self.runner.run([self.name] + args, timeout=timeout)

    @abstractmethod
    def list_installed_packages(self) -> List[Package]:
        """List all installed packages"""
        pass

    def installed_names(self) -> Set[str]:
        return {package.name for package in self.list_installed_packages()}

    @abstractmethod
    def install_package(self, package_name: str) -> bool:
        """Install a package"""
        pass

    @abstractmethod
    def remove_package(self, package_name: str) -> bool:
        """Remove a package"""
        pass
