#!/usr/bin/env python3
"""
Immutable per-run migration context

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
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from .utils.distro import EnvironmentDescriptor


@dataclass(frozen=True)
class MigrationContext:
    """Everything a component needs to know about the current run

    Passed explicitly to every component call instead of living in
    module globals.
    """

    source: Optional[EnvironmentDescriptor] = None
    target: Optional[EnvironmentDescriptor] = None
    home: Path = field(default_factory=lambda: Path(os.path.expanduser("~")))
    dry_run: bool = False
    assume_yes: bool = False
    verbose: bool = False

    @property
    def source_de(self) -> str:
        return self.source.de if self.source else "unknown"

    @property
    def target_de(self) -> str:
        return self.target.de if self.target else "unknown"

    def with_environments(self, source: Optional[EnvironmentDescriptor],
                          target: Optional[EnvironmentDescriptor]) -> 'MigrationContext':
        """Return a copy with the source/target descriptors replaced"""
        return replace(self, source=source, target=target)

    def relative_to_home(self, path: str) -> str:
        """Home-relative form of an absolute path

        Paths outside the home directory keep their absolute layout minus
        the leading slash so they still land inside the archive.
        """
        abs_path = os.path.abspath(os.path.expanduser(path))
        home = str(self.home)
        if abs_path.startswith(home.rstrip("/") + "/"):
            return abs_path[len(home.rstrip("/")) + 1:]
        return abs_path.lstrip("/")
