"""Full-system restore from a ``full_backup()`` archive.

The archive is extracted into a temporary directory (members that would
escape it are rejected), then the restore runs the same staged sequence
as ``restore_database()``: safety backups first, then the database, then
upload directories and configuration files, then the pointer update.

Usage:
    from db_backup.backup.system_restore import full_restore

    result = full_restore(config, force=True)
    print(result.files_backup, result.restored_items)
"""

import logging
import shutil
import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from db_backup.adapters.base import DatabaseClient
from db_backup.backup.archive import (
    CONFIG_DIR,
    SNAPSHOT_MEMBER,
    SQL_MEMBER,
    UPLOADS_DIR,
    read_manifest,
)
from db_backup.backup.backup_restore import (
    SAFETY_LABEL,
    apply_database_restore,
    artifact_timestamp,
    backup_database,
    require_confirmation,
    resolve_restore_target,
)
from db_backup.backup.models import Manifest, RestoreResult
from db_backup.backup.pointers import (
    LATEST_FULL_BACKUP,
    LATEST_RESTORED_FULL,
    write_pointer,
)
from db_backup.config.loader import resolve_database_url
from db_backup.config.models import BackupConfig
from db_backup.errors import SnapshotFormatError

logger = logging.getLogger(__name__)


def full_restore(
    config: BackupConfig,
    path: str | Path | None = None,
    force: bool = False,
    client: DatabaseClient | None = None,
) -> RestoreResult:
    """Restore database, uploads and configuration files from an archive.

    Before anything is replaced, a database safety backup is taken and
    every existing target path is copied to
    ``pre_restore_files_<timestamp>/`` in the system backup directory.
    Neither is removed, whatever the outcome.

    Args:
        config: Backup configuration.
        path: Archive to restore.  Defaults to ``latest_full.txt``.
        force: Explicit acknowledgment that current data will be replaced.
        client: Optional datastore client (a pooled adapter otherwise).

    Returns:
        ``RestoreResult`` with the safety backups and restored items.

    Raises:
        ConfirmationRequiredError: If ``force`` is false (no side effects).
        BackupNotFoundError: If no archive resolves.
        SnapshotFormatError: If the archive or its manifest is invalid.
        QueryError: If the database restore fails.
    """
    require_confirmation(force)
    resolve_database_url(config)
    system_dir = config.system_backup_path
    archive_path = resolve_restore_target(path, system_dir / LATEST_FULL_BACKUP)
    manifest = read_manifest(archive_path)

    with tempfile.TemporaryDirectory(prefix="db-backup-restore-") as staging:
        extract_dir = Path(staging)
        safe_extract(archive_path, extract_dir)

        # Stage 3: safety backups
        logger.info("Creating safety backups before full restore")
        safety = backup_database(config, label=SAFETY_LABEL, client=client)
        file_targets = _file_targets(config, manifest, extract_dir)
        files_backup = _backup_existing_files(system_dir, file_targets)

        # Stage 4: database
        snapshot_path = _member_path(extract_dir, manifest.includes.database_snapshot, SNAPSHOT_MEMBER)
        script_path = _member_path(extract_dir, manifest.includes.database, SQL_MEMBER)
        strategy = apply_database_restore(config, snapshot_path, script_path, client=client)

        # Stage 5: files
        restored_items: list[str] = []
        for member, source, target in file_targets:
            _replace_path(source, target)
            restored_items.append(member)
            logger.info("Restored %s -> %s", member, target)

    write_pointer(system_dir / LATEST_RESTORED_FULL, archive_path)
    logger.info("Full restore complete from %s", archive_path)

    return RestoreResult(
        restored_path=archive_path,
        strategy=strategy,
        safety_backup=safety,
        files_backup=files_backup,
        restored_items=restored_items,
    )


def safe_extract(archive_path: Path, destination: Path) -> None:
    """Extract a zip archive, rejecting members outside ``destination``.

    Raises:
        SnapshotFormatError: If the archive is unreadable or a member
            path escapes the destination.
    """
    root = destination.resolve()
    try:
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = (root / member.filename).resolve()
                if target != root and root not in target.parents:
                    raise SnapshotFormatError(
                        f"Archive member escapes extraction directory: {member.filename}"
                    )
            archive.extractall(root)
    except zipfile.BadZipFile as e:
        raise SnapshotFormatError(f"Invalid full backup archive {archive_path}: {e}") from e


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _member_path(extract_dir: Path, member: str | None, default: str) -> Path | None:
    """Extracted path for a manifest entry, or ``None`` if absent."""
    candidate = extract_dir / (member or default)
    return candidate if candidate.is_file() else None


def _file_targets(
    config: BackupConfig,
    manifest: Manifest,
    extract_dir: Path,
) -> list[tuple[str, Path, Path]]:
    """``(member, extracted source, live target)`` for each archived file item.

    Upload members map back through the configured sources by name and
    config members must name a file on the configured allow-list.  Any
    other member, or one missing from the archive, is skipped.
    """
    sources = {source.name: source for source in config.upload_sources}
    allowed_files = set(config.config_files)
    targets: list[tuple[str, Path, Path]] = []

    for member in manifest.includes.uploads:
        name = member.removeprefix(f"{UPLOADS_DIR}/")
        source = sources.get(name)
        extracted = extract_dir / member
        if source is None or not extracted.exists():
            logger.warning("Skipping upload item %s: no configured source or not in archive", member)
            continue
        targets.append((member, extracted, config.upload_source_path(source)))

    for member in manifest.includes.config_files:
        file_name = member.removeprefix(f"{CONFIG_DIR}/")
        if file_name not in allowed_files or not _is_plain_relative(file_name):
            logger.warning("Skipping config item %s: not an allow-listed config file", member)
            continue
        extracted = extract_dir / member
        if not extracted.exists():
            logger.warning("Skipping config item %s: not in archive", member)
            continue
        targets.append((member, extracted, config.config_file_path(file_name)))

    return targets


def _is_plain_relative(file_name: str) -> bool:
    path = PurePosixPath(file_name)
    return not path.is_absolute() and ".." not in path.parts and "\\" not in file_name


def _backup_existing_files(
    system_dir: Path,
    targets: list[tuple[str, Path, Path]],
) -> Path:
    """Copy every existing live target into ``pre_restore_files_<ts>/``."""
    stamp = artifact_timestamp(datetime.now(timezone.utc))
    backup_root = system_dir / f"pre_restore_files_{stamp}"
    backup_root.mkdir(parents=True, exist_ok=False)

    for member, _source, target in targets:
        if not target.exists():
            continue
        destination = backup_root / member
        destination.parent.mkdir(parents=True, exist_ok=True)
        if target.is_dir():
            shutil.copytree(target, destination)
        else:
            shutil.copy2(target, destination)

    logger.info("Existing files saved to %s", backup_root)
    return backup_root


def _replace_path(source: Path, target: Path) -> None:
    """Remove ``target`` and replace it with a copy of ``source``."""
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    elif target.exists() or target.is_symlink():
        target.unlink()

    target.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, target)
    else:
        shutil.copy2(source, target)
