#!/usr/bin/env python3
"""
Extracts migratable settings from archived configuration

The dconf database is read with ``dconf dump`` against an isolated copy of
the archived file. When dconf cannot be used, or finds nothing worth
keeping, a bounded scan for printable strings inside the binary file is
tried instead. Plain-text settings files are matched line by line.

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
import shutil
import logging
import tempfile
from enum import Enum
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, Union

from ..archive.store import BackupSession
from ..errors import NotFoundError, EmptyError, ToolUnavailableError
from ..utils.runner import Runner
from .categories import (
    SettingCategory, Strategy, DCONF_ALLOWED_KEYS, DCONF_LEGACY_PREFIXES,
)

logger = logging.getLogger(__name__)

SECTION_RE = re.compile(r'^\[([^\]]+)\]$')
KEY_VALUE_RE = re.compile(r'^([a-zA-Z0-9_-]+)=(.*)$')
PRINTABLE_RE = re.compile(rb'[\x20-\x7e\t]{4,}')

# Upper bounds of the fallback scan
SCAN_WINDOW_BYTES = 1024 * 1024
SCAN_MAX_STRINGS = 500

SourceRoot = Union[str, BackupSession]


class ExtractionKind(Enum):
    STRUCTURED = "structured"
    FALLBACK = "fallback"
    UNAVAILABLE = "unavailable"


class StructuredOutcome(Enum):
    OK = "ok"
    TOOL_MISSING = "tool-missing"
    DUMP_FAILED = "dump-failed"
    NO_KEYS = "no-keys"


@dataclass(frozen=True)
class ExtractedSetting:
    scope_key: str
    value: str
    origin_category: str

    def __str__(self) -> str:
        return f"{self.scope_key}={self.value}"


@dataclass
class ExtractionResult:
    """Settings found in a structured store and how they were found"""

    kind: ExtractionKind
    source_path: str
    outcome: StructuredOutcome
    settings: List[ExtractedSetting] = field(default_factory=list)


def locate(source_root: SourceRoot, relative_path: str) -> Optional[str]:
    """Find a home-relative path in a backup session or a plain directory"""
    if isinstance(source_root, BackupSession):
        return source_root.find_archived(relative_path)
    candidate = os.path.join(source_root, relative_path)
    return candidate if os.path.lexists(candidate) else None


def dedupe(settings: Iterable[ExtractedSetting]) -> List[ExtractedSetting]:
    """Drop later duplicates of a scope key"""
    seen = set()
    unique = []
    for setting in settings:
        if setting.scope_key in seen:
            logger.debug(f"Dropping duplicate setting: {setting.scope_key}")
            continue
        seen.add(setting.scope_key)
        unique.append(setting)
    return unique


def parse_dconf_dump(text: str, category_id: str,
                     allowed: Iterable[str] = DCONF_ALLOWED_KEYS) -> List[ExtractedSetting]:
    """Keep the allow-listed keys of a ``dconf dump`` output"""
    allowed = set(allowed)
    settings = []
    section = ""
    for line in text.splitlines():
        match = SECTION_RE.match(line)
        if match:
            section = match.group(1)
            continue
        match = KEY_VALUE_RE.match(line)
        if not match or not section:
            continue
        key, value = match.group(1), match.group(2)
        if f"{section}:{key}" in allowed:
            settings.append(ExtractedSetting(f"/{section}/{key}", value, category_id))
    return dedupe(settings)


def scan_printable_strings(path: str, window: int = SCAN_WINDOW_BYTES,
                           limit: int = SCAN_MAX_STRINGS) -> List[str]:
    """Printable runs inside the first ``window`` bytes of a binary file"""
    with open(path, 'rb') as f:
        data = f.read(window)
    found = []
    for match in PRINTABLE_RE.finditer(data):
        found.append(match.group().decode('ascii'))
        if len(found) >= limit:
            break
    return found


def match_legacy_keys(strings: List[str], category_id: str,
                      prefixes: Iterable[str] = DCONF_LEGACY_PREFIXES) -> List[ExtractedSetting]:
    """Pick ``/path/key:value`` entries out of scanned strings"""
    settings = []
    for prefix in prefixes:
        for text in strings:
            text = text.strip()
            if text.startswith(prefix + ":"):
                settings.append(ExtractedSetting(prefix, text[len(prefix) + 1:], category_id))
                break
    return dedupe(settings)


def extract_key_values(path: str, relative_path: str, keys: Iterable[str],
                       category_id: str, section: str = "") -> List[ExtractedSetting]:
    """Lines of a plain-text settings file starting with ``key=``

    With ``section``, only lines above the first header or inside
    ``[section]`` are read.
    """
    keys = tuple(keys)
    settings = []
    current = ""
    with open(path, 'r', errors='replace') as f:
        for line in f:
            line = line.rstrip("\r\n")
            if line.startswith("["):
                current = line.strip()[1:-1]
                continue
            if section and current and current != section:
                continue
            for key in keys:
                if line.startswith(key + "="):
                    settings.append(ExtractedSetting(f"/{relative_path}/{key}", line[len(key) + 1:], category_id))
                    break
    return dedupe(settings)


class SettingsExtractor:
    """Reads settings out of an archived home tree"""

    def __init__(self, runner: Runner, timeout: Optional[int] = None):
        self.runner = runner
        self.timeout = timeout

    def extract(self, category: SettingCategory, source_root: SourceRoot) -> List[ExtractedSetting]:
        """Extract a category's settings

        Raises:
            NotFoundError: if none of the category's sources exist
            EmptyError: if a structured store exists but yields nothing
        """
        if category.strategy == Strategy.DCONF:
            result = self.extract_structured(category, source_root)
            if result.kind == ExtractionKind.UNAVAILABLE:
                raise EmptyError(f"No migratable settings in {result.source_path} "
                                 f"(dconf: {result.outcome.value})")
            return result.settings
        if category.strategy == Strategy.KEY_VALUE:
            return self.extract_plain_text(category, source_root)
        raise ValueError(f"Category {category.id} is copied, not extracted")

    def extract_structured(self, category: SettingCategory, source_root: SourceRoot) -> ExtractionResult:
        """Extract from the dconf database, tagging how the result was obtained

        Raises:
            NotFoundError: if no database exists among the candidates
        """
        database = None
        for relative in category.paths:
            found = locate(source_root, relative)
            if found and os.path.isfile(found):
                database = found
                break
        if not database:
            raise NotFoundError(f"No dconf database found for {category.id}")

        settings, outcome = self._dump_structured(database, category.id)
        if settings:
            logger.info(f"Extracted {len(settings)} settings with dconf dump")
            return ExtractionResult(ExtractionKind.STRUCTURED, database, outcome, settings)

        if outcome == StructuredOutcome.TOOL_MISSING:
            logger.warning("dconf command not available, using fallback string scan")
            logger.warning("This method may not reliably extract all settings")
        else:
            logger.info(f"dconf dump gave no settings ({outcome.value}), trying string scan")

        try:
            strings = scan_printable_strings(database)
        except OSError as e:
            logger.error(f"Could not read {database}: {e}")
            strings = []
        settings = match_legacy_keys(strings, category.id)
        if settings:
            logger.info(f"Extracted {len(settings)} settings with the fallback string scan")
            return ExtractionResult(ExtractionKind.FALLBACK, database, outcome, settings)
        return ExtractionResult(ExtractionKind.UNAVAILABLE, database, outcome)

    def _dump_structured(self, database: str,
                         category_id: str) -> Tuple[List[ExtractedSetting], StructuredOutcome]:
        if not self.runner.has_tool("dconf"):
            return [], StructuredOutcome.TOOL_MISSING

        # dconf reads $XDG_CONFIG_HOME/dconf/user, so a private config home
        # keeps the archived copy and the live store untouched
        with tempfile.TemporaryDirectory(prefix="desktop-migrator-dconf-") as workdir:
            profile_dir = os.path.join(workdir, "dconf")
            try:
                os.makedirs(profile_dir)
                shutil.copyfile(database, os.path.join(profile_dir, "user"))
            except OSError as e:
                logger.error(f"Could not stage dconf database: {e}")
                return [], StructuredOutcome.DUMP_FAILED

            env = dict(os.environ, XDG_CONFIG_HOME=workdir)
            try:
                result = self.runner.capture(["dconf", "dump", "/"], env=env, timeout=self.timeout)
            except ToolUnavailableError:
                return [], StructuredOutcome.TOOL_MISSING

        if result.returncode != 0:
            logger.debug(f"dconf dump failed: {result.stderr.strip()}")
            return [], StructuredOutcome.DUMP_FAILED

        settings = parse_dconf_dump(result.stdout, category_id)
        if not settings:
            return [], StructuredOutcome.NO_KEYS
        return settings, StructuredOutcome.OK

    def extract_plain_text(self, category: SettingCategory, source_root: SourceRoot) -> List[ExtractedSetting]:
        """Match the category's keys in its plain-text files

        Raises:
            NotFoundError: if no file exists or no key matched
        """
        settings = []
        for source in category.key_sources:
            path = locate(source_root, source.relative_path)
            if not path or not os.path.isfile(path):
                logger.debug(f"Not in backup: {source.relative_path}")
                continue
            try:
                found = extract_key_values(path, source.relative_path, source.keys,
                                           category.id, source.section)
            except OSError as e:
                logger.error(f"Could not read {path}: {e}")
                continue
            logger.debug(f"Found {len(found)} keys in {source.relative_path}")
            settings.extend(found)

        settings = dedupe(settings)
        if not settings:
            raise NotFoundError(f"No {category.id} keys found in backup")
        return settings
