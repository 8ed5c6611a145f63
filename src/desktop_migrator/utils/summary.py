#!/usr/bin/env python3
"""
Migrated / skipped / errors accounting shared by every phase

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


class OperationSummary:
    """Tri-count outcome of a phase or category"""

    def __init__(self, label: str = "", migrated: int = 0, skipped: int = 0, errors: int = 0):
        self.label = label
        self.migrated = migrated
        self.skipped = skipped
        self.errors = errors

    def add(self, other: 'OperationSummary') -> 'OperationSummary':
        """Accumulate another summary into this one"""
        self.migrated += other.migrated
        self.skipped += other.skipped
        self.errors += other.errors
        return self

    @property
    def ok(self) -> bool:
        return self.errors == 0

    def __str__(self) -> str:
        prefix = f"{self.label}: " if self.label else ""
        return f"{prefix}{self.migrated} migrated, {self.skipped} skipped, {self.errors} errors"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OperationSummary):
            return False
        return (self.migrated, self.skipped, self.errors) == (other.migrated, other.skipped, other.errors)

    def __repr__(self) -> str:
        return f"OperationSummary({self})"
