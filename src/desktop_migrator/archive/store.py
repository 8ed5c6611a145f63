#!/usr/bin/env python3
"""
Timestamped backup sessions for configuration files

A session is a directory owned by one migration attempt. It holds a
``configs/<group>/`` tree mirroring home-relative paths, a ``metadata/``
directory of single-line text files, a ``manifest.json`` and the generated
recovery scripts.

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
import glob
import json
import time
import logging
from datetime import datetime
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Tuple

from .. import __version__
from ..context import MigrationContext
from ..errors import MigrationError, BackupNotFoundError, IOFailureError
from ..utils.config import config
from ..utils.distro import get_host_info
from ..utils.progress import ProgressTracker, OperationType
from ..utils.runner import Runner
from ..utils.summary import OperationSummary
from . import scripts

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
MANIFEST_NAME = "manifest.json"


class Disposition(Enum):
    COPIED = "copied"
    MOVED = "moved"
    SKIPPED_MISSING = "skipped-missing"
    FAILED = "failed"


class ArchiveMode(Enum):
    COPY = "copy"
    MOVE = "move"


@dataclass
class ArchivedPath:
    """One source path considered for archival"""

    source_path: str
    relative_path: str
    group: str
    disposition: Disposition
    error: str = ""

    @property
    def archive_key(self) -> str:
        """Location below the session's configs/ directory"""
        return f"{self.group}/{self.relative_path}"

    @property
    def stored(self) -> bool:
        return self.disposition in (Disposition.COPIED, Disposition.MOVED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_path': self.source_path,
            'relative_path': self.relative_path,
            'group': self.group,
            'disposition': self.disposition.value,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArchivedPath':
        return cls(
            source_path=data['source_path'],
            relative_path=data['relative_path'],
            group=data['group'],
            disposition=Disposition(data['disposition']),
            error=data.get('error', ""),
        )


@dataclass
class RecoveryArtifacts:
    manifest: str
    restore_script: str
    rollback_script: str
    entry_points: List[str] = field(default_factory=list)


@dataclass
class BackupSession:
    """A backup directory and the paths archived into it"""

    id: str
    root: str
    manifest: Dict[str, Any] = field(default_factory=dict)
    archived_paths: List[ArchivedPath] = field(default_factory=list)
    failures: int = 0
    finalized: bool = False
    artifacts: Optional[RecoveryArtifacts] = None

    @property
    def configs_dir(self) -> str:
        return os.path.join(self.root, "configs")

    @property
    def metadata_dir(self) -> str:
        return os.path.join(self.root, "metadata")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.root, MANIFEST_NAME)

    def get(self, source_path: str) -> Optional[ArchivedPath]:
        for record in self.archived_paths:
            if record.source_path == source_path:
                return record
        return None

    def stored_paths(self) -> List[ArchivedPath]:
        return [record for record in self.archived_paths if record.stored]

    def read_metadata(self, name: str) -> str:
        """Value of one metadata file, empty when it does not exist"""
        path = os.path.join(self.metadata_dir, f"{name}.txt")
        if not os.path.isfile(path):
            return ""
        with open(path, 'r') as f:
            return f.read().strip()

    def find_archived(self, relative_path: str) -> Optional[str]:
        """Locate an archived copy of a home-relative path

        Every group below configs/ is searched; the first group in sorted
        order that holds the path wins.
        """
        if not os.path.isdir(self.configs_dir):
            return None
        for group in sorted(os.listdir(self.configs_dir)):
            candidate = os.path.join(self.configs_dir, group, relative_path)
            if os.path.lexists(candidate):
                return candidate
        return None


class ArchiveStore:
    """Creates, fills, finalizes and restores backup sessions"""

    def __init__(self, context: MigrationContext, runner: Runner, base_dir: Optional[str] = None):
        self.context = context
        self.runner = runner
        self.base_dir = os.path.expanduser(base_dir or config.get_backup_base_dir())

    def begin_session(self, label: Optional[str] = None) -> BackupSession:
        """Create a new session directory named ``<label>-<timestamp>``

        Raises:
            IOFailureError: if the session directory cannot be written
        """
        label = label or config.get("backup_label")
        session_id = f"{label}-{time.strftime('%Y%m%d-%H%M%S')}"
        root = os.path.join(self.base_dir, session_id)

        suffix = 1
        while os.path.exists(root):
            root = os.path.join(self.base_dir, f"{session_id}-{suffix}")
            suffix += 1
        session_id = os.path.basename(root)

        session = BackupSession(id=session_id, root=root)
        session.manifest = self._base_manifest(session)
        try:
            for directory in (session.root, session.logs_dir, session.configs_dir, session.metadata_dir):
                self.runner.make_dirs(directory)
            self._write_manifest(session)
            self._write_metadata(session)
        except OSError as e:
            raise IOFailureError(f"Could not create backup session at {root}: {e}") from e

        logger.info(f"Started backup session {session.id} at {session.root}")
        return session

    def open_session(self, root: str) -> BackupSession:
        """Load an existing session for reading

        Raises:
            BackupNotFoundError: if the session directory does not exist
        """
        root = os.path.abspath(os.path.expanduser(root))
        if not os.path.isdir(root):
            raise BackupNotFoundError(f"Backup directory not found: {root}")

        session = BackupSession(id=os.path.basename(root), root=root, finalized=True)
        if os.path.isfile(session.manifest_path):
            try:
                with open(session.manifest_path, 'r') as f:
                    session.manifest = json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not read manifest {session.manifest_path}: {e}")

        records = session.manifest.get('archived_paths')
        if records:
            session.archived_paths = [ArchivedPath.from_dict(record) for record in records]
            session.failures = int(session.manifest.get('failures', 0))
        else:
            session.archived_paths = self._scan_configs(session)

        logger.info(f"Opened backup session {session.id} ({len(session.archived_paths)} archived paths)")
        return session

    @staticmethod
    def latest_session(base_dir: str, label: str) -> Optional[str]:
        """Newest session directory for a label, by modification time"""
        candidates = [path for path in glob.glob(os.path.join(os.path.expanduser(base_dir), f"{label}-*"))
                      if os.path.isdir(path)]
        if not candidates:
            return None
        return max(candidates, key=os.path.getmtime)

    def archive(self, session: BackupSession, source_path: str,
                mode: ArchiveMode = ArchiveMode.COPY, group: Optional[str] = None) -> ArchivedPath:
        """Archive one path into the session

        A path that does not exist is recorded as skipped. A failed
        transfer is recorded and counted, never raised.
        """
        if session.finalized:
            raise MigrationError(f"Backup session {session.id} is finalized")

        source_path = os.path.abspath(os.path.expanduser(source_path))
        existing = session.get(source_path)
        if existing:
            logger.debug(f"Already archived in this session: {source_path}")
            return existing

        group = group or self.context.source_de
        relative = self.context.relative_to_home(source_path)

        if not os.path.lexists(source_path):
            logger.debug(f"Path does not exist, skipping: {source_path}")
            record = ArchivedPath(source_path, relative, group, Disposition.SKIPPED_MISSING)
            session.archived_paths.append(record)
            return record

        dest = os.path.join(session.configs_dir, group, relative)
        try:
            self.runner.make_dirs(os.path.dirname(dest))
            if mode == ArchiveMode.MOVE:
                self.runner.move_path(source_path, dest)
                disposition = Disposition.MOVED
            else:
                self.runner.copy_path(source_path, dest)
                disposition = Disposition.COPIED
            record = ArchivedPath(source_path, relative, group, disposition)
            logger.info(f"Archived ({disposition.value}): {source_path} -> {dest}")
        except OSError as e:
            session.failures += 1
            record = ArchivedPath(source_path, relative, group, Disposition.FAILED, error=str(e))
            logger.error(f"Failed to archive {source_path}: {e}")

        session.archived_paths.append(record)
        return record

    def archive_all(self, session: BackupSession, relative_paths: List[str],
                    mode: ArchiveMode = ArchiveMode.COPY, group: Optional[str] = None) -> OperationSummary:
        """Archive a list of home-relative paths, tolerating failures"""
        summary = OperationSummary(label=group or self.context.source_de)
        with ProgressTracker(OperationType.ARCHIVE, total=len(relative_paths),
                             desc=f"Archiving {summary.label}", unit="paths") as progress:
            for relative in relative_paths:
                record = self.archive(session, os.path.join(str(self.context.home), relative), mode, group)
                if record.stored:
                    summary.migrated += 1
                elif record.disposition == Disposition.FAILED:
                    summary.errors += 1
                else:
                    summary.skipped += 1
                progress.update(1, status=relative)
        return summary

    def finalize(self, session: BackupSession, entry_points: bool = True) -> RecoveryArtifacts:
        """Write the manifest and the recovery scripts derived from the session

        Raises:
            IOFailureError: if the manifest or a script cannot be written
        """
        if session.finalized:
            raise MigrationError(f"Backup session {session.id} is already finalized")

        session.manifest.update({
            'archived_paths': [record.to_dict() for record in session.archived_paths],
            'failures': session.failures,
        })

        restore_script = os.path.join(session.root, scripts.RESTORE_SCRIPT_NAME)
        rollback_script = os.path.join(session.root, scripts.ROLLBACK_SCRIPT_NAME)
        source = self.context.source
        written = []
        try:
            self._write_manifest(session)
            self.runner.write_text(restore_script, scripts.render_restore_script(self.restore_entries(session)),
                                   executable=True)
            self.runner.write_text(
                rollback_script,
                scripts.render_rollback_script(
                    previous_image=source.image if source else "unknown",
                    previous_de=self.context.source_de,
                    created=session.manifest.get('timestamp', ""),
                ),
                executable=True)

            if entry_points:
                for name, phase in ((scripts.POST_SCRIPT_NAME, "post"), (scripts.SETTINGS_SCRIPT_NAME, "settings")):
                    path = os.path.join(session.root, name)
                    self.runner.write_text(path, scripts.render_entry_point(phase), executable=True)
                    written.append(path)
        except OSError as e:
            raise IOFailureError(f"Could not write recovery files to {session.root}: {e}") from e

        session.finalized = True
        session.artifacts = RecoveryArtifacts(
            manifest=session.manifest_path,
            restore_script=restore_script,
            rollback_script=rollback_script,
            entry_points=written,
        )

        if session.failures:
            logger.warning(f"Backup session {session.id} finalized with {session.failures} failed paths")
        else:
            logger.info(f"Backup session {session.id} finalized")
        return session.artifacts

    @staticmethod
    def restore_entries(session: BackupSession) -> List[Tuple[str, str]]:
        return [(record.archive_key, record.source_path) for record in session.stored_paths()]

    def restore(self, session: BackupSession) -> OperationSummary:
        """Write every archived path back unless its destination exists

        Same semantics as the generated restore script: directories are
        walked file by file and nothing already present is overwritten, so
        running it again restores nothing.
        """
        summary = OperationSummary(label="restore")
        entries = self.restore_entries(session)

        with ProgressTracker(OperationType.RESTORE, total=len(entries),
                             desc="Restoring configs", unit="paths") as progress:
            for archive_key, original in entries:
                archived = os.path.join(session.configs_dir, archive_key)
                if not os.path.lexists(archived):
                    logger.warning(f"Missing from backup: {archived}")
                    summary.skipped += 1
                elif os.path.isdir(archived) and not os.path.islink(archived):
                    for item in self._walk_files(archived):
                        dest = os.path.join(original, os.path.relpath(item, archived))
                        self._restore_one(item, dest, summary)
                else:
                    self._restore_one(archived, original, summary)
                progress.update(1)

        print(f"Restore complete: {summary.migrated} restored, {summary.skipped} skipped, "
              f"{summary.errors} errors")
        return summary

    def _restore_one(self, src: str, dest: str, summary: OperationSummary) -> None:
        if os.path.lexists(dest):
            print(f"  Skipping (exists): {dest}")
            summary.skipped += 1
            return
        try:
            self.runner.make_dirs(os.path.dirname(dest))
            self.runner.copy_path(src, dest)
            print(f"  Restored: {dest}")
            summary.migrated += 1
        except OSError as e:
            logger.error(f"Failed to restore {dest}: {e}")
            summary.errors += 1

    @staticmethod
    def _walk_files(root: str) -> List[str]:
        """Files and symlinks below a directory, sorted"""
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            for name in filenames:
                found.append(os.path.join(dirpath, name))
            # Symlinked directories are listed in dirnames and not followed
            for name in dirnames:
                path = os.path.join(dirpath, name)
                if os.path.islink(path):
                    found.append(path)
        return sorted(found)

    def _scan_configs(self, session: BackupSession) -> List[ArchivedPath]:
        """Rebuild the archived path list from the configs/ tree

        Used for sessions without a manifest listing; each top-level entry
        of a group is treated as one archived path.
        """
        records = []
        if not os.path.isdir(session.configs_dir):
            return records
        home = str(self.context.home)
        for group in sorted(os.listdir(session.configs_dir)):
            group_dir = os.path.join(session.configs_dir, group)
            if not os.path.isdir(group_dir):
                continue
            for dirpath, dirnames, filenames in os.walk(group_dir):
                relative_dir = os.path.relpath(dirpath, group_dir)
                for name in sorted(filenames + [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]):
                    relative = os.path.normpath(os.path.join(relative_dir, name))
                    records.append(ArchivedPath(os.path.join(home, relative), relative, group, Disposition.COPIED))
        return records

    def _base_manifest(self, session: BackupSession) -> Dict[str, Any]:
        source = self.context.source
        target = self.context.target
        return {
            'version': __version__,
            'schema_version': SCHEMA_VERSION,
            'timestamp': datetime.now().astimezone().isoformat(timespec='seconds'),
            'backup_dir': session.root,
            'source_image': source.image if source else "unknown",
            'target_image': target.image if target else "unknown",
            'source_de': self.context.source_de,
            'target_de': self.context.target_de,
            'host': get_host_info(),
        }

    def _write_manifest(self, session: BackupSession) -> None:
        self.runner.write_text(session.manifest_path, json.dumps(session.manifest, indent=2) + "\n")

    def _write_metadata(self, session: BackupSession) -> None:
        source = self.context.source
        target = self.context.target
        values = {
            'previous-family': source.family if source else "",
            'previous-de': self.context.source_de,
            'previous-image': source.image if source else "unknown",
            'previous-variant': source.variant if source else "",
            'previous-tag': source.tag if source else "",
            'target-family': target.family if target else "",
            'target-de': self.context.target_de,
            'target-image': target.image if target else "unknown",
            'timestamp': session.manifest.get('timestamp', ""),
        }
        for name, value in values.items():
            self.runner.write_text(os.path.join(session.metadata_dir, f"{name}.txt"), f"{value}\n")
