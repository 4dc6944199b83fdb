"""Tests for the structured snapshot engine and snapshot validation."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from conftest import FakeDatabase
from db_backup.backup.models import SNAPSHOT_TYPE_TAG, ColumnDef, DatabaseSnapshot
from db_backup.backup.snapshot import (
    capture_snapshot,
    load_snapshot,
    snapshot_to_json,
    validate_snapshot,
    write_snapshot,
)
from db_backup.errors import SnapshotFormatError

GENERATED_AT = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)


def _write(path, data) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


def _valid_document() -> dict:
    return {
        "formatVersion": 1,
        "generatedAt": "2026-01-15T10:00:00+00:00",
        "typeTag": SNAPSHOT_TYPE_TAG,
        "tables": [
            {
                "name": "people",
                "columns": [
                    {"name": "id", "storageType": "int4"},
                    {"name": "name", "storageType": "text"},
                ],
                "rows": [{"id": 1, "name": "Ada"}],
            }
        ],
    }


class TestCaptureSnapshot:
    def test_captures_every_table(self, fake_db):
        snapshot = capture_snapshot(fake_db, generated_at=GENERATED_AT)

        assert [t.name for t in snapshot.tables] == ["appointments", "audit_log"]
        assert snapshot.generated_at == "2026-01-15T10:00:00+00:00"
        assert snapshot.row_count == 1
        assert snapshot.tables[0].column_names == ["id", "tags", "metadata", "created_at"]

    def test_document_uses_camel_case_keys(self, fake_db):
        data = json.loads(snapshot_to_json(capture_snapshot(fake_db, generated_at=GENERATED_AT)))

        assert set(data) == {"formatVersion", "generatedAt", "typeTag", "tables"}
        assert data["typeTag"] == SNAPSHOT_TYPE_TAG
        column = data["tables"][0]["columns"][1]
        assert column == {"name": "tags", "storageType": "_text", "serial": False}

    def test_driver_types_made_json_safe(self):
        columns = [
            ColumnDef(name="id", storage_type="uuid"),
            ColumnDef(name="price", storage_type="numeric"),
            ColumnDef(name="day", storage_type="date"),
            ColumnDef(name="blob", storage_type="bytea"),
        ]
        row = {
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "price": Decimal("9.99"),
            "day": date(2024, 2, 29),
            "blob": b"\x00\x10",
        }
        db = FakeDatabase({"items": (columns, [row])})

        data = json.loads(snapshot_to_json(capture_snapshot(db)))
        assert data["tables"][0]["rows"][0] == {
            "id": "12345678-1234-5678-1234-567812345678",
            "price": "9.99",
            "day": "2024-02-29",
            "blob": "\\x0010",
        }


class TestWriteAndLoad:
    def test_write_then_load(self, fake_db, tmp_path):
        path = write_snapshot(capture_snapshot(fake_db), tmp_path / "snap" / "database.json")
        loaded = load_snapshot(path)

        assert isinstance(loaded, DatabaseSnapshot)
        table = loaded.tables[0]
        assert table.rows[0]["tags"] == ["a", "b"]
        assert table.rows[0]["metadata"] == {"x": 1}
        assert table.columns[0].serial is True

    def test_load_invalid_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SnapshotFormatError):
            load_snapshot(path)

    def test_legacy_key_aliases_accepted(self, tmp_path):
        path = tmp_path / "legacy.json"
        _write(
            path,
            {
                "version": 1,
                "generated_at": "2026-01-15T10:00:00+00:00",
                "tables": [{"name": "t", "columns": [{"name": "a", "type": "text"}], "rows": []}],
            },
        )
        snapshot = load_snapshot(path)
        assert snapshot.tables[0].columns[0].storage_type == "text"


class TestValidateSnapshot:
    """``validate_snapshot`` mirrors a report dict: valid, errors, warnings."""

    def test_valid(self, tmp_path):
        path = tmp_path / "ok.json"
        _write(path, _valid_document())
        report = validate_snapshot(path)
        assert report == {"valid": True, "errors": [], "warnings": []}

    def test_file_not_found(self, tmp_path):
        report = validate_snapshot(tmp_path / "missing.json")
        assert not report["valid"]
        assert "not found" in report["errors"][0]

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[", encoding="utf-8")
        report = validate_snapshot(path)
        assert not report["valid"]
        assert "Invalid JSON" in report["errors"][0]

    def test_missing_tables_key(self, tmp_path):
        path = tmp_path / "no_tables.json"
        _write(path, {"generatedAt": "x"})
        report = validate_snapshot(path)
        assert report["errors"] == ["Missing required key: tables"]

    def test_missing_generated_at(self, tmp_path):
        path = tmp_path / "no_ts.json"
        document = _valid_document()
        del document["generatedAt"]
        _write(path, document)
        assert not validate_snapshot(path)["valid"]

    def test_wrong_version_rejected(self, tmp_path):
        path = tmp_path / "v2.json"
        document = _valid_document()
        document["formatVersion"] = 2
        _write(path, document)
        report = validate_snapshot(path)
        assert not report["valid"]
        assert "Unsupported snapshot version" in report["errors"][0]

    def test_unknown_row_key_is_error(self, tmp_path):
        path = tmp_path / "extra.json"
        document = _valid_document()
        document["tables"][0]["rows"][0]["email"] = "ada@example.com"
        _write(path, document)
        report = validate_snapshot(path)
        assert not report["valid"]
        assert "email" in report["errors"][0]

    def test_missing_row_key_is_warning(self, tmp_path):
        path = tmp_path / "sparse.json"
        document = _valid_document()
        del document["tables"][0]["rows"][0]["name"]
        _write(path, document)
        report = validate_snapshot(path)
        assert report["valid"]
        assert len(report["warnings"]) == 1

    def test_rows_without_columns_warned(self, tmp_path):
        path = tmp_path / "nocols.json"
        document = _valid_document()
        document["tables"][0]["columns"] = []
        _write(path, document)
        report = validate_snapshot(path)
        assert report["valid"]
        assert "no columns" in report["warnings"][0]
