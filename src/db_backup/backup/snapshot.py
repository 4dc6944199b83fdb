"""Structured snapshot engine: dialect-independent schema + data documents.

A snapshot captures every base table's column descriptors and raw rows.
It is bundled into full-system archives and is the preferred restore
source, since restoring it needs no SQL parsing.

Usage:
    from db_backup.backup.snapshot import capture_snapshot, write_snapshot, load_snapshot

    snapshot = capture_snapshot(adapter)
    write_snapshot(snapshot, Path("database.json"))
    restored = load_snapshot(Path("database.json"))
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from db_backup.adapters.base import DatabaseClient
from db_backup.backup.literals import json_default
from db_backup.backup.models import (
    SNAPSHOT_FORMAT_VERSION,
    DatabaseSnapshot,
    TableSnapshot,
)
from db_backup.errors import SnapshotFormatError


def capture_snapshot(
    client: DatabaseClient,
    generated_at: datetime | None = None,
) -> DatabaseSnapshot:
    """Read every base table into a ``DatabaseSnapshot``.

    Values are kept exactly as the driver returns them; conversion to
    JSON-safe forms happens only when the document is written.
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    tables: list[TableSnapshot] = []
    for table_name in client.list_tables():
        columns = client.get_columns(table_name)
        rows = client.select_all(table_name)
        tables.append(TableSnapshot(name=table_name, columns=columns, rows=rows))

    return DatabaseSnapshot(generated_at=generated_at.isoformat(), tables=tables)


def snapshot_to_json(snapshot: DatabaseSnapshot) -> str:
    """Encode a snapshot document as compact JSON text.

    UUIDs and decimals become strings, temporal values ISO-8601 strings,
    and binary values ``\\x``-prefixed hex.
    """
    return json.dumps(
        snapshot.model_dump(by_alias=True),
        default=json_default,
        ensure_ascii=False,
        separators=(",", ":"),
    )


def write_snapshot(snapshot: DatabaseSnapshot, output_path: Path) -> Path:
    """Write a snapshot document to ``output_path``."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(snapshot_to_json(snapshot), encoding="utf-8")
    return output_path


def load_snapshot(snapshot_path: Path) -> DatabaseSnapshot:
    """Load and validate a snapshot document.

    Raises:
        SnapshotFormatError: If the file is not a valid snapshot document.
    """
    report = validate_snapshot(snapshot_path)
    if report["errors"]:
        raise SnapshotFormatError(
            f"Invalid snapshot {snapshot_path}: {'; '.join(report['errors'])}"
        )
    return DatabaseSnapshot.model_validate(_read_json(snapshot_path))


def validate_snapshot(snapshot_path: Path) -> dict:
    """Validate snapshot file format and row/column alignment.

    This function only reads a local file; no database I/O.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        and ``warnings`` (list[str]).

    Example:
        report = validate_snapshot(Path("database.json"))
        if report["errors"]:
            raise ValueError("Snapshot is invalid")
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        data = _read_json(snapshot_path)
    except FileNotFoundError:
        errors.append(f"Snapshot file not found: {snapshot_path}")
        return {"valid": False, "errors": errors, "warnings": warnings}
    except json.JSONDecodeError as e:
        errors.append(f"Invalid JSON: {e}")
        return {"valid": False, "errors": errors, "warnings": warnings}

    if not isinstance(data, dict) or not isinstance(data.get("tables"), list):
        errors.append("Missing required key: tables")
        return {"valid": False, "errors": errors, "warnings": warnings}

    try:
        snapshot = DatabaseSnapshot.model_validate(data)
    except ValidationError as e:
        errors.append(f"Malformed snapshot document: {e.error_count()} validation errors")
        return {"valid": False, "errors": errors, "warnings": warnings}

    if snapshot.format_version != SNAPSHOT_FORMAT_VERSION:
        errors.append(
            f"Unsupported snapshot version '{snapshot.format_version}' "
            f"(expected '{SNAPSHOT_FORMAT_VERSION}')"
        )

    for table in snapshot.tables:
        if table.rows and not table.columns:
            warnings.append(f"{table.name}: rows present but no columns; table will be skipped")
            continue

        known = set(table.column_names)
        for index, row in enumerate(table.rows):
            unknown = sorted(set(row) - known)
            if unknown:
                errors.append(
                    f"{table.name} row {index} has columns not in descriptor list: "
                    f"{', '.join(unknown)}"
                )
            missing = known - set(row)
            if missing:
                warnings.append(
                    f"{table.name} row {index} missing {len(missing)} column(s); restored as NULL"
                )

    valid = len(errors) == 0
    return {"valid": valid, "errors": errors, "warnings": warnings}


def _read_json(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
