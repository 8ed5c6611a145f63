"""
Backup sessions: archived configuration, manifest and recovery scripts
"""

from .store import ArchiveStore, ArchiveMode, ArchivedPath, BackupSession, Disposition, RecoveryArtifacts

__all__ = [
    'ArchiveStore',
    'ArchiveMode',
    'ArchivedPath',
    'BackupSession',
    'Disposition',
    'RecoveryArtifacts',
]
