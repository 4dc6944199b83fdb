"""db-backup: PostgreSQL backup and restore with a built-in fallback engine.

Produces SQL dumps (``pg_dump`` or a logical dump written over a pooled
connection), structured JSON snapshots and full-system zip archives, and
restores them behind an explicit confirmation and a safety backup.

Usage:
    from db_backup import load_backup_config, backup_database, restore_database
    from db_backup import full_backup, full_restore
    from db_backup import PostgresAdapter, DatabaseClient
"""

__version__ = "0.1.0"

# Adapters
from db_backup.adapters.base import DatabaseClient
from db_backup.adapters.postgres import PostgresAdapter

# Config
from db_backup.config.loader import load_backup_config
from db_backup.config.models import BackupConfig, UploadSource

# Backup / restore
from db_backup.backup.archive import full_backup, read_manifest
from db_backup.backup.backup_restore import (
    backup_database,
    restore_database,
    snapshot_database,
)
from db_backup.backup.models import BackupArtifact, RestoreResult, RestoreStrategy
from db_backup.backup.system_restore import full_restore

# Errors
from db_backup.errors import (
    BackupError,
    BackupNotFoundError,
    ConfigurationError,
    ConfirmationRequiredError,
    QueryError,
    SnapshotFormatError,
    ToolUnavailableError,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "PostgresAdapter",
    # Config
    "load_backup_config",
    "BackupConfig",
    "UploadSource",
    # Backup / restore
    "backup_database",
    "snapshot_database",
    "restore_database",
    "full_backup",
    "full_restore",
    "read_manifest",
    "BackupArtifact",
    "RestoreResult",
    "RestoreStrategy",
    # Errors
    "BackupError",
    "BackupNotFoundError",
    "ConfigurationError",
    "ConfirmationRequiredError",
    "QueryError",
    "SnapshotFormatError",
    "ToolUnavailableError",
]
