#!/usr/bin/env python3
"""
Progress tracking utilities for Desktop Migrator

This handles terminal progress bars for long-running loops like
archiving a list of paths or executing a reconciliation plan.

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

import sys
import logging
from typing import Union
from enum import Enum

from tqdm import tqdm

logger = logging.getLogger(__name__)


class OperationType(Enum):
    """Types of operations that can be tracked"""
    ARCHIVE = "archive"
    RESTORE = "restore"
    FLATPAK_INSTALL = "flatpak_install"
    FLATPAK_REMOVE = "flatpak_remove"


class ProgressTracker:
    """Class to track and display progress of long-running operations"""

    def __init__(self,
                 operation_type: Union[str, OperationType],
                 total: int = 0,
                 desc: str = "",
                 unit: str = "items",
                 autostart: bool = True):
        """Initialize a progress tracker

        Args:
            operation_type: Type of operation being tracked
            total: Total number of items to process
            desc: Description of the operation
            unit: Unit of items being processed (paths, apps, etc.)
            autostart: Whether to start the progress bar immediately
        """
        self.operation_type = operation_type.value if isinstance(operation_type, OperationType) else operation_type
        self.total = total
        self.desc = desc or f"Processing {self.operation_type}"
        self.unit = unit
        self.current = 0
        self.active = False
        self.pbar = None

        if autostart:
            self.start()

    def start(self) -> 'ProgressTracker':
        """Start the progress tracker"""
        self.active = True
        # Bars only make sense on an interactive terminal
        self.pbar = tqdm(
            total=self.total,
            desc=self.desc,
            unit=self.unit,
            leave=False,
            disable=not sys.stderr.isatty(),
            bar_format='{desc}: {percentage:3.0f}%|{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]'
        )
        return self

    def update(self, n: int = 1, status: str = "") -> None:
        """Update the progress tracker

        Args:
            n: Number of items to increment by
            status: Status text to display
        """
        if not self.active:
            return

        self.current += n
        if self.pbar:
            self.pbar.update(n)
            if status:
                self.pbar.set_postfix_str(status)

    def close(self, status: str = "Complete") -> None:
        """Close the progress tracker"""
        if not self.active:
            return

        self.active = False
        if self.pbar:
            self.pbar.close()
        logger.debug(f"{self.desc} - {status} ({self.current}/{self.total} {self.unit})")

    def __enter__(self) -> 'ProgressTracker':
        if not self.active:
            self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        status = "Error" if exc_type else "Complete"
        self.close(status=status)
