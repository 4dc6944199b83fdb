"""Tests for the full-system archive packager."""

import json
import zipfile

import pytest

from db_backup.backup.archive import MANIFEST_PATH, full_backup, read_manifest
from db_backup.backup.models import MANIFEST_TYPE_TAG, ArtifactKind
from db_backup.backup.pointers import LATEST_BACKUP, LATEST_FULL_BACKUP, read_pointer
from db_backup.errors import QueryError, SnapshotFormatError


@pytest.fixture
def project(config):
    """Populate the project root with one upload source and one config file."""
    root = config.project_root
    uploads = root / "public" / "uploads"
    (uploads / "avatars").mkdir(parents=True)
    (uploads / "logo.png").write_bytes(b"\x89PNG")
    (uploads / "avatars" / "ada.jpg").write_bytes(b"\xff\xd8")
    (root / ".env").write_text("SECRET=1\n")
    return root


class TestFullBackup:
    def test_archive_written_with_pointer(self, config, fake_db, project, no_native_tools):
        artifact = full_backup(config, label="weekly", client=fake_db)

        assert artifact.kind is ArtifactKind.FULL_ARCHIVE
        assert artifact.path.parent == config.system_backup_path.resolve()
        assert artifact.path.name.startswith("full_backup_weekly_")
        assert artifact.path.suffix == ".zip"
        assert read_pointer(config.system_backup_path / LATEST_FULL_BACKUP) == artifact.path

    def test_manifest_lists_copied_items_only(self, config, fake_db, project, no_native_tools):
        manifest = read_manifest(full_backup(config, client=fake_db).path)

        assert manifest.type_tag == MANIFEST_TYPE_TAG
        assert manifest.includes.database == "database/database.sql"
        assert manifest.includes.database_snapshot == "database/database.json"
        # client/uploads and theme.json do not exist
        assert manifest.includes.uploads == ["uploads/public-uploads"]
        assert manifest.includes.config_files == ["config/.env"]

    def test_manifest_matches_archive_contents(self, config, fake_db, project, no_native_tools):
        artifact = full_backup(config, client=fake_db)
        manifest = read_manifest(artifact.path)

        with zipfile.ZipFile(artifact.path) as archive:
            names = archive.namelist()
        members = [n for n in names if n != MANIFEST_PATH and not n.endswith("/")]

        for item in manifest.paths:
            assert any(n == item or n.startswith(item + "/") for n in names), item
        for member in members:
            assert any(member == item or member.startswith(item + "/") for item in manifest.paths), member

    def test_archive_contents(self, config, fake_db, project, no_native_tools):
        artifact = full_backup(config, client=fake_db)

        with zipfile.ZipFile(artifact.path) as archive:
            assert archive.read("uploads/public-uploads/avatars/ada.jpg") == b"\xff\xd8"
            assert archive.read("config/.env") == b"SECRET=1\n"
            assert b'INSERT INTO "appointments"' in archive.read("database/database.sql")
            snapshot = json.loads(archive.read("database/database.json"))
            assert [t["name"] for t in snapshot["tables"]] == ["appointments", "audit_log"]
            assert archive.getinfo("config/.env").compress_type == zipfile.ZIP_DEFLATED

    def test_empty_upload_source_archived(self, config, fake_db, no_native_tools):
        (config.project_root / "public" / "uploads").mkdir(parents=True)

        artifact = full_backup(config, client=fake_db)
        manifest = read_manifest(artifact.path)

        assert manifest.includes.uploads == ["uploads/public-uploads"]
        with zipfile.ZipFile(artifact.path) as archive:
            assert archive.getinfo("uploads/public-uploads/").is_dir()

    def test_database_dump_labelled_full(self, config, fake_db, project, no_native_tools):
        full_backup(config, label="weekly", client=fake_db)
        latest_dump = read_pointer(config.database_backup_path / LATEST_BACKUP)
        assert latest_dump.name.startswith("backup_full_weekly_")

    def test_database_failure_writes_no_archive(self, config, fake_db, project, no_native_tools):
        def _boom(table):
            raise QueryError("connection lost")

        fake_db.select_all = _boom

        with pytest.raises(QueryError):
            full_backup(config, client=fake_db)

        system_dir = config.system_backup_path
        assert not any(system_dir.glob("*.zip"))
        assert read_pointer(system_dir / LATEST_FULL_BACKUP) is None


class TestReadManifest:
    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "fake.zip"
        path.write_text("nope")
        with pytest.raises(SnapshotFormatError):
            read_manifest(path)

    def test_missing_manifest(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("database/database.sql", "SELECT 1;")
        with pytest.raises(SnapshotFormatError):
            read_manifest(path)

    def test_wrong_type_tag(self, tmp_path):
        path = tmp_path / "other.zip"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr(
                MANIFEST_PATH,
                json.dumps({"typeTag": "something-else", "createdAt": "x", "label": "x"}),
            )
        with pytest.raises(SnapshotFormatError):
            read_manifest(path)
