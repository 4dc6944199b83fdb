"""Database backup and restore orchestration.

``backup_database()`` tries ``pg_dump`` first and transparently falls
back to the logical dump engine; the caller never learns which path ran.
``restore_database()`` is destructive: it requires ``force=True``, always
takes a fresh safety backup first, and then restores through a fixed
preference order (structured snapshot, then ``psql``, then the built-in
script executor).

Usage:
    from db_backup.backup.backup_restore import backup_database, restore_database
    from db_backup.config import load_backup_config

    config = load_backup_config()

    # Backup
    artifact = backup_database(config, label="nightly")

    # Restore (latest backup when no path is given)
    result = restore_database(config, force=True)
"""

import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from db_backup.adapters.base import DatabaseClient
from db_backup.adapters.postgres import PostgresAdapter
from db_backup.backup.models import (
    ArtifactKind,
    BackupArtifact,
    RestoreResult,
    RestoreStrategy,
)
from db_backup.backup.native import is_tool_available, run_pg_dump, run_psql_script
from db_backup.backup.pointers import (
    LATEST_BACKUP,
    LATEST_RESTORED,
    read_pointer,
    write_pointer,
)
from db_backup.backup.snapshot import capture_snapshot, load_snapshot, write_snapshot
from db_backup.backup.sql_dump import write_sql_dump
from db_backup.config.loader import resolve_database_url
from db_backup.config.models import BackupConfig
from db_backup.errors import (
    BackupNotFoundError,
    ConfirmationRequiredError,
    ToolUnavailableError,
)

logger = logging.getLogger(__name__)

SAFETY_LABEL = "pre_restore"

_UNSAFE_LABEL_CHARS = re.compile(r"[^a-z0-9_-]")


# ------------------------------------------------------------------
# Naming helpers
# ------------------------------------------------------------------


def sanitize_label(label: str | None, default: str = "manual") -> str:
    """Reduce a label to ``[a-z0-9_-]``; empty results use ``default``."""
    cleaned = _UNSAFE_LABEL_CHARS.sub("", str(label or "").strip().lower())
    return cleaned or default


def artifact_timestamp(moment: datetime) -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2024-01-01T00-00-00-000000Z``."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def unique_artifact_path(directory: Path, stem: str, suffix: str) -> Path:
    """Return ``directory/stem+suffix``, adding ``_<n>`` if it is taken."""
    candidate = directory / f"{stem}{suffix}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate


@contextmanager
def open_client(config: BackupConfig, client: DatabaseClient | None = None) -> Iterator[DatabaseClient]:
    """Yield ``client`` if given, else a pooled adapter closed on exit."""
    if client is not None:
        yield client
        return

    adapter = PostgresAdapter(resolve_database_url(config), ssl=config.ssl)
    try:
        yield adapter
    finally:
        adapter.close()


# ------------------------------------------------------------------
# Backup
# ------------------------------------------------------------------


def backup_database(
    config: BackupConfig,
    label: str = "manual",
    client: DatabaseClient | None = None,
) -> BackupArtifact:
    """Write a SQL dump of the whole database and update ``latest.txt``.

    ``pg_dump`` is attempted first.  If it is missing or fails, the
    logical dump engine writes the same path instead; this is logged as a
    warning and is otherwise invisible to the caller.

    Args:
        config: Backup configuration (must carry a connection string).
        label: Free-form label, sanitised into the file name.
        client: Datastore client for the fallback path.  When ``None``,
            a pooled adapter is opened (and closed) on demand.

    Returns:
        The written ``BackupArtifact``.

    Raises:
        ConfigurationError: If no connection string is configured.
        QueryError: If the fallback engine also fails.

    Example:
        artifact = backup_database(config, label="before-migration")
        artifact.path.name
        # 'backup_before-migration_2026-01-15T10-00-00-000000Z.sql'
    """
    database_url = resolve_database_url(config)
    backup_dir = config.database_backup_path
    backup_dir.mkdir(parents=True, exist_ok=True)

    created_at = datetime.now(timezone.utc)
    safe_label = sanitize_label(label)
    output_path = unique_artifact_path(
        backup_dir, f"backup_{safe_label}_{artifact_timestamp(created_at)}", ".sql"
    )

    try:
        run_pg_dump(config, database_url, output_path)
    except ToolUnavailableError as e:
        logger.warning("pg_dump failed, using logical dump fallback: %s", e)
        try:
            with open_client(config, client) as db:
                write_sql_dump(db, output_path)
        except Exception:
            # Never leave a partial dump that looks like a valid artifact
            output_path.unlink(missing_ok=True)
            raise

    write_pointer(backup_dir / LATEST_BACKUP, output_path)
    logger.info("Database backup written: %s", output_path)

    return BackupArtifact(
        path=output_path.resolve(),
        label=safe_label,
        timestamp=created_at,
        kind=ArtifactKind.SQL_DUMP,
    )


def snapshot_database(
    config: BackupConfig,
    label: str = "manual",
    client: DatabaseClient | None = None,
) -> BackupArtifact:
    """Write a standalone structured snapshot and update ``latest.txt``."""
    resolve_database_url(config)
    backup_dir = config.database_backup_path
    backup_dir.mkdir(parents=True, exist_ok=True)

    created_at = datetime.now(timezone.utc)
    safe_label = sanitize_label(label)
    output_path = unique_artifact_path(
        backup_dir, f"snapshot_{safe_label}_{artifact_timestamp(created_at)}", ".json"
    )

    with open_client(config, client) as db:
        snapshot = capture_snapshot(db, generated_at=created_at)
    write_snapshot(snapshot, output_path)

    write_pointer(backup_dir / LATEST_BACKUP, output_path)
    logger.info(
        "Snapshot written: %s (%d tables, %d rows)",
        output_path,
        len(snapshot.tables),
        snapshot.row_count,
    )

    return BackupArtifact(
        path=output_path.resolve(),
        label=safe_label,
        timestamp=created_at,
        kind=ArtifactKind.STRUCTURED_SNAPSHOT,
    )


# ------------------------------------------------------------------
# Restore
# ------------------------------------------------------------------


def require_confirmation(force: bool) -> None:
    """Gate destructive operations on an explicit acknowledgment."""
    if not force:
        raise ConfirmationRequiredError(
            "Restore is destructive and was blocked: pass --force to confirm."
        )


def resolve_restore_target(path: str | Path | None, pointer_file: Path) -> Path:
    """Resolve an explicit artifact path, or fall back to a pointer.

    Raises:
        BackupNotFoundError: If neither resolves to an existing file.
    """
    if path is not None:
        candidate = Path(path).expanduser().resolve()
        if not candidate.exists():
            raise BackupNotFoundError(f"Backup file not found: {candidate}")
        return candidate

    latest = read_pointer(pointer_file)
    if latest is None:
        raise BackupNotFoundError(f"No backup given and no latest backup recorded in {pointer_file}")
    return latest


def choose_restore_strategy(
    snapshot_path: Path | None,
    script_path: Path | None,
    native_client_available: bool,
) -> RestoreStrategy:
    """Pick the database restore path.

    Preference order is fixed: structured snapshot, then ``psql``, then
    the built-in executor.

    Raises:
        BackupNotFoundError: If neither a snapshot nor a script is present.
    """
    if snapshot_path is not None:
        return RestoreStrategy.SNAPSHOT
    if script_path is None:
        raise BackupNotFoundError("Backup contains neither a snapshot nor a SQL script")
    if native_client_available:
        return RestoreStrategy.NATIVE_CLIENT
    return RestoreStrategy.BUILTIN_EXECUTOR


def apply_database_restore(
    config: BackupConfig,
    snapshot_path: Path | None,
    script_path: Path | None,
    client: DatabaseClient | None = None,
) -> RestoreStrategy:
    """Restore the database from a snapshot or script.

    Any failure propagates; snapshot restores roll back completely.

    Returns:
        The strategy that ran.
    """
    database_url = resolve_database_url(config)
    native_available = snapshot_path is None and is_tool_available(config, "psql")
    strategy = choose_restore_strategy(snapshot_path, script_path, native_available)
    logger.info("Restoring database via %s", strategy.value)

    if strategy is RestoreStrategy.SNAPSHOT:
        snapshot = load_snapshot(snapshot_path)
        with open_client(config, client) as db:
            db.restore_snapshot(snapshot)
    elif strategy is RestoreStrategy.NATIVE_CLIENT:
        run_psql_script(config, database_url, script_path)
    else:
        logger.warning("psql not found, executing script with the built-in executor")
        script = script_path.read_text(encoding="utf-8")
        with open_client(config, client) as db:
            db.execute_script(script)

    return strategy


def restore_database(
    config: BackupConfig,
    path: str | Path | None = None,
    force: bool = False,
    client: DatabaseClient | None = None,
) -> RestoreResult:
    """Restore the database from a SQL dump or snapshot file.

    Stages run in order and each must succeed before the next starts:
    confirmation, target resolution, safety backup, database restore,
    pointer update.  The safety backup is never removed, even when the
    restore fails.

    Args:
        config: Backup configuration.
        path: Artifact to restore; ``.json`` files are treated as
            snapshots, anything else as SQL scripts.  Defaults to the
            ``latest.txt`` pointer.
        force: Explicit acknowledgment that current data will be replaced.
        client: Optional datastore client (a pooled adapter otherwise).

    Returns:
        ``RestoreResult`` describing the restore and its safety backup.

    Raises:
        ConfirmationRequiredError: If ``force`` is false (no side effects).
        ConfigurationError: If no connection string is configured.
        BackupNotFoundError: If no artifact resolves.
        QueryError: If the restore fails.
    """
    require_confirmation(force)
    resolve_database_url(config)
    backup_dir = config.database_backup_path
    target = resolve_restore_target(path, backup_dir / LATEST_BACKUP)

    logger.info("Creating safety backup before restore")
    safety = backup_database(config, label=SAFETY_LABEL, client=client)

    logger.info("Restoring %s", target)
    is_snapshot = target.suffix.lower() == ".json"
    strategy = apply_database_restore(
        config,
        snapshot_path=target if is_snapshot else None,
        script_path=None if is_snapshot else target,
        client=client,
    )

    write_pointer(backup_dir / LATEST_RESTORED, target)

    return RestoreResult(
        restored_path=target,
        strategy=strategy,
        safety_backup=safety,
    )
