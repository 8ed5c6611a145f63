#!/usr/bin/env python3
"""
Applies extracted settings and archived files to the running desktop

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
import re
import logging
import subprocess
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from ..archive.store import BackupSession
from ..context import MigrationContext
from ..errors import MigrationError, ValidationRejectedError, ToolUnavailableError
from ..utils.runner import Runner
from ..utils.summary import OperationSummary
from .categories import SettingCategory, Strategy, get_category
from .extractor import ExtractedSetting, SettingsExtractor

logger = logging.getLogger(__name__)

SCOPE_KEY_RE = re.compile(r'^/[A-Za-z0-9._-]+(/[A-Za-z0-9._-]+)*$')


def validate_setting(setting: ExtractedSetting) -> None:
    """Reject scope keys and values that are unsafe to write

    Raises:
        ValidationRejectedError: if the key is not a plain slash path or
            climbs out of its root, or the value spans several lines
    """
    key = setting.scope_key
    if not SCOPE_KEY_RE.match(key):
        raise ValidationRejectedError(f"Malformed key: {key!r}")
    if any(part in ('.', '..') for part in key.split("/")[1:]):
        raise ValidationRejectedError(f"Path traversal in key: {key!r}")
    if "\n" in setting.value or "\r" in setting.value:
        raise ValidationRejectedError(f"Multi-line value for key: {key}")


def section_bounds(lines: List[str], section: str = "") -> Optional[Tuple[int, int]]:
    """Return the ``[start, end)`` line range holding the body of ``section``

    Without a section the whole file is the range. None means the file
    has no such section.
    """
    if not section:
        return 0, len(lines)

    header = f"[{section}]"
    for index, line in enumerate(lines):
        if line.strip() != header:
            continue
        for later in range(index + 1, len(lines)):
            if lines[later].startswith("["):
                return index + 1, later
        return index + 1, len(lines)
    return None


def merge_key_lines(lines: List[str], updates: Dict[str, str], section: str = "") -> List[str]:
    """Replace or add ``key=value`` lines

    A key already present in ``section`` has its first line there replaced
    in place; the same key under another section is left alone. Missing
    keys go to the end of ``section`` when the file has that section,
    otherwise to the end of the file (under a new section header when one
    is given). Every other line is returned untouched.
    """
    result = list(lines)
    bounds = section_bounds(result, section)
    missing = []
    for key, value in updates.items():
        index = _find_key(result, key, bounds)
        if index is None:
            missing.append(f"{key}={value}\n")
            continue
        line = result[index]
        ending = line[len(line.rstrip("\r\n")):]
        result[index] = f"{key}={value}{ending}"

    if not missing:
        return result

    if result and not result[-1].endswith("\n"):
        result[-1] += "\n"

    if bounds is None:
        return result + [f"[{section}]\n"] + missing
    if not section:
        return result + missing

    start, end = bounds
    # Keep the blank lines separating sections after the inserted keys
    while end > start and result[end - 1].strip() == "":
        end -= 1
    return result[:end] + missing + result[end:]


def _find_key(lines: List[str], key: str, bounds: Optional[Tuple[int, int]]) -> Optional[int]:
    if bounds is None:
        return None
    for index in range(*bounds):
        if lines[index].startswith(key + "="):
            return index
    return None


class SettingsApplier:
    """Writes settings into the live desktop, aggregating per-item outcomes"""

    def __init__(self, context: MigrationContext, runner: Runner):
        self.context = context
        self.runner = runner

    def apply(self, settings: List[ExtractedSetting], destination: Optional[str] = None) -> OperationSummary:
        """Apply settings below ``destination`` (the home directory by default)

        dconf settings are written with ``dconf write``; other settings are
        merged into the plain-text file named by their scope key. Per-setting
        failures are counted, never raised.
        """
        destination = destination or str(self.context.home)
        summary = OperationSummary(label="settings")

        dconf_settings = []
        text_settings = []
        for setting in settings:
            try:
                validate_setting(setting)
            except ValidationRejectedError as e:
                logger.warning(f"Rejected setting: {e}")
                summary.errors += 1
                continue
            category = get_category(setting.origin_category)
            if category and category.strategy == Strategy.DCONF:
                dconf_settings.append(setting)
            else:
                text_settings.append(setting)

        if dconf_settings:
            summary.add(self._apply_dconf(dconf_settings))
        if text_settings:
            summary.add(self._apply_text(text_settings, destination))
        return summary

    def _apply_dconf(self, settings: List[ExtractedSetting]) -> OperationSummary:
        summary = OperationSummary(label="dconf")
        if not self.runner.has_tool("dconf"):
            logger.warning("dconf is not installed on this system. Cannot apply GNOME settings.")
            print("dconf is not installed; install it with: sudo rpm-ostree install dconf")
            summary.skipped += len(settings)
            return summary

        for setting in settings:
            try:
                result = self.runner.run(["dconf", "write", setting.scope_key, setting.value])
            except ToolUnavailableError as e:
                logger.warning(str(e))
                summary.skipped += 1
                continue
            except subprocess.SubprocessError as e:
                logger.error(f"Failed to apply {setting.scope_key}: {e}")
                summary.errors += 1
                continue

            if result.returncode == 0:
                logger.info(f"Applied: {setting.scope_key}")
                summary.migrated += 1
            else:
                logger.error(f"Failed to apply {setting.scope_key}: {result.stderr.strip()}")
                summary.errors += 1
        return summary

    def _apply_text(self, settings: List[ExtractedSetting], destination: str) -> OperationSummary:
        summary = OperationSummary(label="text")

        by_file: Dict[str, Dict[str, ExtractedSetting]] = OrderedDict()
        for setting in settings:
            if "/" not in setting.scope_key[1:]:
                logger.warning(f"No file named by key: {setting.scope_key}")
                summary.errors += 1
                continue
            relative_file, key = setting.scope_key[1:].rsplit("/", 1)
            keyed = by_file.setdefault(relative_file, OrderedDict())
            if key in keyed:
                logger.warning(f"Duplicate key, keeping the first value: {setting.scope_key}")
                summary.skipped += 1
                continue
            keyed[key] = setting

        for relative_file, keyed in by_file.items():
            path = os.path.join(destination, relative_file)
            section = self._section_for(relative_file, keyed)
            try:
                lines = []
                if os.path.isfile(path):
                    with open(path, 'r', newline='') as f:
                        lines = f.readlines()

                bounds = section_bounds(lines, section)
                current = {line.rstrip("\r\n") for line in lines[slice(*bounds)]} if bounds else set()

                updates = OrderedDict()
                for key, setting in keyed.items():
                    if f"{key}={setting.value}" in current:
                        logger.debug(f"Already set in {path}: {key}")
                        summary.skipped += 1
                    else:
                        updates[key] = setting.value

                if not updates:
                    continue

                merged = merge_key_lines(lines, updates, section)
                self.runner.make_dirs(os.path.dirname(path))
                self.runner.write_text(path, "".join(merged))
                summary.migrated += len(updates)
                logger.info(f"Updated {len(updates)} keys in {path}")
            except OSError as e:
                logger.error(f"Failed to update {path}: {e}")
                summary.errors += len(keyed)
        return summary

    @staticmethod
    def _section_for(relative_file: str, keyed: Dict[str, ExtractedSetting]) -> str:
        for setting in keyed.values():
            category = get_category(setting.origin_category)
            if not category:
                continue
            for source in category.key_sources:
                if source.relative_path == relative_file:
                    return source.section
        return ""

    def copy_archived(self, session: BackupSession, relative_paths, exclude=(),
                      destination: Optional[str] = None) -> OperationSummary:
        """Copy archived paths back to the same home-relative location

        An existing destination is never overwritten. With ``exclude``,
        directories are copied entry by entry and entries with an excluded
        name are skipped.
        """
        destination = destination or str(self.context.home)
        summary = OperationSummary(label="copy")

        for relative in relative_paths:
            archived = session.find_archived(relative)
            if not archived:
                logger.debug(f"Not in backup: {relative}")
                summary.skipped += 1
                continue

            target = os.path.join(destination, relative)
            if exclude and os.path.isdir(archived) and not os.path.islink(archived):
                for name in sorted(os.listdir(archived)):
                    if name in exclude:
                        logger.debug(f"Skipping default theme: {name}")
                        summary.skipped += 1
                        continue
                    self._copy_one(os.path.join(archived, name), os.path.join(target, name), summary)
            else:
                self._copy_one(archived, target, summary)
        return summary

    def _copy_one(self, src: str, dest: str, summary: OperationSummary) -> None:
        if os.path.lexists(dest):
            logger.warning(f"Destination exists, skipping: {dest}")
            summary.skipped += 1
            return
        try:
            self.runner.make_dirs(os.path.dirname(dest))
            self.runner.copy_path(src, dest)
            print(f"  Migrated: {dest}")
            summary.migrated += 1
        except OSError as e:
            logger.error(f"Failed to migrate {dest}: {e}")
            summary.errors += 1

    def migrate_category(self, category: SettingCategory, session: BackupSession,
                         extractor: SettingsExtractor) -> OperationSummary:
        """Extract, apply and copy everything a category covers"""
        if category.warning:
            logger.warning(category.warning)
            print(f"Note: {category.warning}")

        if category.strategy == Strategy.COPY:
            summary = self.copy_archived(session, category.paths, category.exclude)
            summary.label = category.id
            return summary

        summary = OperationSummary(label=category.id)
        try:
            settings = extractor.extract(category, session)
        except MigrationError as e:
            # Nothing to replay is not a failure
            logger.info(f"{category.id}: {e}")
            summary.skipped += 1
            settings = []

        if settings:
            if self.runner.dry_run:
                print(f"[DRY-RUN] Would apply {len(settings)} {category.id} settings:")
                for setting in settings:
                    print(f"    {setting}")
            summary.add(self.apply(settings))

        # Background images follow the category even when no keys were found
        if category.asset_paths:
            summary.add(self.copy_archived(session, category.asset_paths))
        return summary
