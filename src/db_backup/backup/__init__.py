"""Backup documents and SQL literal serialization.

The orchestrators live in submodules (``backup_restore``, ``archive``,
``system_restore``) and are re-exported from the top-level package.

Usage:
    from db_backup.backup import DatabaseSnapshot, Manifest, to_sql_literal
    from db_backup.backup.backup_restore import backup_database, restore_database
    from db_backup.backup.archive import full_backup
    from db_backup.backup.system_restore import full_restore
"""

from db_backup.backup.literals import to_sql_literal
from db_backup.backup.models import (
    BackupArtifact,
    ColumnDef,
    DatabaseSnapshot,
    Manifest,
    RestoreResult,
    RestoreStrategy,
    StorageKind,
    StorageType,
    parse_storage_type,
)

__all__ = [
    "BackupArtifact",
    "ColumnDef",
    "DatabaseSnapshot",
    "Manifest",
    "RestoreResult",
    "RestoreStrategy",
    "StorageKind",
    "StorageType",
    "parse_storage_type",
    "to_sql_literal",
]
