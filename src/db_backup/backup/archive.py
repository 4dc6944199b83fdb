"""Full-system archive packager.

A full backup bundles the database (SQL dump plus structured snapshot),
the configured upload directories and an allow-list of configuration
files into one zip archive with a manifest describing exactly what it
holds.

Archive layout:
    database/database.sql
    database/database.json
    uploads/<source name>/...
    config/<file name>
    meta/manifest.json

Usage:
    from db_backup.backup.archive import full_backup, read_manifest

    artifact = full_backup(config, label="weekly")
    manifest = read_manifest(artifact.path)
    print(manifest.paths)
"""

import json
import logging
import shutil
import tempfile
import zipfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from db_backup.adapters.base import DatabaseClient
from db_backup.backup.backup_restore import (
    artifact_timestamp,
    backup_database,
    open_client,
    sanitize_label,
    unique_artifact_path,
)
from db_backup.backup.models import (
    MANIFEST_TYPE_TAG,
    ArtifactKind,
    BackupArtifact,
    Manifest,
    ManifestIncludes,
)
from db_backup.backup.pointers import LATEST_FULL_BACKUP, write_pointer
from db_backup.backup.snapshot import capture_snapshot, write_snapshot
from db_backup.config.models import BackupConfig
from db_backup.errors import SnapshotFormatError

logger = logging.getLogger(__name__)

DATABASE_DIR = "database"
UPLOADS_DIR = "uploads"
CONFIG_DIR = "config"
MANIFEST_PATH = "meta/manifest.json"
SQL_MEMBER = f"{DATABASE_DIR}/database.sql"
SNAPSHOT_MEMBER = f"{DATABASE_DIR}/database.json"


def full_backup(
    config: BackupConfig,
    label: str = "manual",
    client: DatabaseClient | None = None,
) -> BackupArtifact:
    """Create a full-system zip archive and update ``latest_full.txt``.

    Missing upload sources and configuration files are skipped with a
    warning; the manifest lists only what was actually copied.  The
    staging directory is removed on every exit path.

    Args:
        config: Backup configuration.
        label: Free-form label, sanitised into the archive name.
        client: Optional datastore client (a pooled adapter otherwise).

    Returns:
        ``BackupArtifact`` for the written archive.
    """
    safe_label = sanitize_label(label)
    system_dir = config.system_backup_path
    system_dir.mkdir(parents=True, exist_ok=True)
    created_at = datetime.now(timezone.utc)

    with tempfile.TemporaryDirectory(prefix="db-backup-full-") as staging:
        staging_dir = Path(staging)
        includes = ManifestIncludes()

        # Database: SQL dump (pg_dump or fallback) plus structured snapshot
        database_dir = staging_dir / DATABASE_DIR
        database_dir.mkdir()
        with open_client(config, client) as db:
            dump = backup_database(config, label=f"full_{safe_label}", client=db)
            shutil.copy2(dump.path, staging_dir / SQL_MEMBER)
            includes.database = SQL_MEMBER

            snapshot = capture_snapshot(db, generated_at=created_at)
            write_snapshot(snapshot, staging_dir / SNAPSHOT_MEMBER)
            includes.database_snapshot = SNAPSHOT_MEMBER

        includes.uploads = _copy_uploads(config, staging_dir)
        includes.config_files = _copy_config_files(config, staging_dir)

        manifest = Manifest(
            created_at=created_at.isoformat(),
            label=safe_label,
            includes=includes,
        )
        manifest_file = staging_dir / MANIFEST_PATH
        manifest_file.parent.mkdir(parents=True)
        manifest_file.write_text(
            json.dumps(manifest.model_dump(by_alias=True), indent=2),
            encoding="utf-8",
        )

        archive_path = unique_artifact_path(
            system_dir, f"full_backup_{safe_label}_{artifact_timestamp(created_at)}", ".zip"
        )
        try:
            _zip_directory(staging_dir, archive_path)
        except Exception:
            archive_path.unlink(missing_ok=True)
            raise

    write_pointer(system_dir / LATEST_FULL_BACKUP, archive_path)
    logger.info("Full backup written: %s (%d items)", archive_path, len(manifest.paths))

    return BackupArtifact(
        path=archive_path.resolve(),
        label=safe_label,
        timestamp=created_at,
        kind=ArtifactKind.FULL_ARCHIVE,
    )


def read_manifest(archive_path: Path) -> Manifest:
    """Read ``meta/manifest.json`` from a full-system archive.

    Raises:
        SnapshotFormatError: If the archive or its manifest is invalid.
    """
    try:
        with zipfile.ZipFile(archive_path) as archive:
            data = json.loads(archive.read(MANIFEST_PATH).decode("utf-8"))
    except (zipfile.BadZipFile, KeyError, json.JSONDecodeError) as e:
        raise SnapshotFormatError(f"Invalid full backup archive {archive_path}: {e}") from e

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        raise SnapshotFormatError(f"Invalid manifest in {archive_path}: {e}") from e

    if manifest.type_tag != MANIFEST_TYPE_TAG:
        raise SnapshotFormatError(
            f"Unexpected manifest type '{manifest.type_tag}' in {archive_path}"
        )
    return manifest


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _copy_uploads(config: BackupConfig, staging_dir: Path) -> list[str]:
    copied: list[str] = []
    for source in config.upload_sources:
        source_path = config.upload_source_path(source)
        if not source_path.is_dir():
            logger.warning("Upload source %s not found at %s; skipping", source.name, source_path)
            continue
        member = f"{UPLOADS_DIR}/{source.name}"
        shutil.copytree(source_path, staging_dir / member)
        copied.append(member)
    return copied


def _copy_config_files(config: BackupConfig, staging_dir: Path) -> list[str]:
    copied: list[str] = []
    config_dir = staging_dir / CONFIG_DIR
    for file_name in config.config_files:
        source_path = config.config_file_path(file_name)
        if not source_path.is_file():
            logger.warning("Config file %s not found; skipping", file_name)
            continue
        target = config_dir / file_name
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_path, target)
        copied.append(f"{CONFIG_DIR}/{file_name}")
    return copied


def _zip_directory(source_dir: Path, archive_path: Path) -> None:
    with zipfile.ZipFile(
        archive_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for path in sorted(source_dir.rglob("*")):
            arcname = path.relative_to(source_dir).as_posix()
            # Directory entries keep empty upload sources in the archive
            if path.is_dir():
                archive.write(path, arcname + "/")
            elif path.is_file():
                archive.write(path, arcname)
