#!/usr/bin/env python3
"""
Error taxonomy for Desktop Migrator

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


class MigrationError(Exception):
    """Base class for all errors raised by the migrator"""


class NotFoundError(MigrationError):
    """An optional source never existed"""


class EmptyError(MigrationError):
    """A source exists but nothing recognized could be read from it"""


class ToolUnavailableError(MigrationError):
    """A required external tool is not installed or could not run"""

    def __init__(self, tool: str, message: str = ""):
        self.tool = tool
        super().__init__(message or f"Required tool not available: {tool}")


class ValidationRejectedError(MigrationError):
    """A key or path failed its safety grammar check"""


class IOFailureError(MigrationError):
    """A write, copy or remove failed"""


class FetchFailureError(MigrationError):
    """A remote catalog could not be fetched and no cache exists"""


class BackupNotFoundError(MigrationError):
    """The backup directory for a restore or replay does not exist"""
