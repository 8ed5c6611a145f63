#!/usr/bin/env python3
"""
Side-effect executor honouring the dry-run mode

Every mutating primitive of the migrator goes through a Runner. Each one
checks the dry-run flag right before acting and prints a description of
the intended action instead, so the same branching runs in both modes.

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
import stat
import shutil
import logging
import subprocess
from typing import List, Dict, Optional

from ..errors import ToolUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class Runner:
    """Performs filesystem and process side effects, or previews them"""

    def __init__(self, dry_run: bool = False, timeout: int = DEFAULT_TIMEOUT):
        self.dry_run = dry_run
        self.timeout = timeout
        # Descriptions of every action skipped because of dry-run
        self.previews: List[str] = []

    def _preview(self, description: str) -> None:
        self.previews.append(description)
        logger.debug(f"[DRY-RUN] {description}")
        print(f"[DRY-RUN] Would {description}")

    @staticmethod
    def has_tool(name: str) -> bool:
        """Check if an external command is on PATH"""
        return shutil.which(name) is not None

    def make_dirs(self, path: str) -> None:
        if self.dry_run:
            if not os.path.isdir(path):
                self._preview(f"create directory: {path}")
            return
        os.makedirs(path, exist_ok=True)

    def copy_path(self, src: str, dest: str) -> None:
        """Copy a file, symlink or tree preserving attributes and links

        Raises:
            OSError: if the copy fails
        """
        if self.dry_run:
            self._preview(f"copy: {src} -> {dest}")
            return

        if os.path.islink(src):
            if os.path.lexists(dest):
                os.unlink(dest)
            os.symlink(os.readlink(src), dest)
        elif os.path.isdir(src):
            shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        else:
            shutil.copy2(src, dest, follow_symlinks=False)
        logger.debug(f"Copied {src} -> {dest}")

    def move_path(self, src: str, dest: str) -> None:
        """Move a path into place

        Raises:
            OSError: if the move fails
        """
        if self.dry_run:
            self._preview(f"move: {src} -> {dest}")
            return
        shutil.move(src, dest)
        logger.debug(f"Moved {src} -> {dest}")

    def write_text(self, path: str, content: str, executable: bool = False) -> None:
        """Write a text file, optionally marking it executable"""
        if self.dry_run:
            self._preview(f"write file: {path}")
            return
        with open(path, 'w') as f:
            f.write(content)
        if executable:
            self.make_executable(path)

    def make_executable(self, path: str) -> None:
        if self.dry_run:
            self._preview(f"mark executable: {path}")
            return
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def run(self, cmd: List[str], env: Optional[Dict[str, str]] = None,
            timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        """Run a mutating external command

        In dry-run mode nothing is executed and a successful result is
        returned so the caller's accounting stays the same.

        Raises:
            ToolUnavailableError: if the command is not installed
        """
        if self.dry_run:
            self._preview(f"run: {' '.join(cmd)}")
            return subprocess.CompletedProcess(cmd, 0, "", "")
        return self.capture(cmd, env=env, timeout=timeout)

    def capture(self, cmd: List[str], env: Optional[Dict[str, str]] = None,
                timeout: Optional[int] = None) -> subprocess.CompletedProcess:
        """Run a read-only command and capture its output

        Always executes, also in dry-run mode. A timeout is reported as a
        failed run (return code 124).

        Raises:
            ToolUnavailableError: if the command is not installed
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors='replace',
                env=env,
                timeout=timeout or self.timeout,
                check=False
            )
        except FileNotFoundError:
            raise ToolUnavailableError(cmd[0])
        except subprocess.TimeoutExpired:
            logger.warning(f"Command timed out after {timeout or self.timeout}s: {' '.join(cmd)}")
            return subprocess.CompletedProcess(cmd, 124, "", "timed out")
