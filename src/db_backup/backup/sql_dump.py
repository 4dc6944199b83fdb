"""Logical dump engine: a re-executable SQL script built by walking tables.

This is the fallback used when ``pg_dump`` cannot produce a dump.  The
script truncates every base table and reloads it row by row inside one
transaction with referential-integrity triggers disabled.

Usage:
    from db_backup.backup.sql_dump import write_sql_dump

    write_sql_dump(adapter, Path("backups/database/backup_manual.sql"))
"""

from datetime import datetime, timezone
from pathlib import Path

from db_backup.adapters.base import DatabaseClient
from db_backup.backup.literals import quote_identifier, quote_literal, to_sql_literal
from db_backup.backup.models import ColumnDef


def render_sql_dump(client: DatabaseClient, generated_at: datetime | None = None) -> str:
    """Render the full logical dump script.

    Tables are processed one at a time; each table's rows are read in full
    before moving to the next.  Tables with no columns or no rows are
    skipped.  Any query failure propagates (``QueryError``) and no script
    is produced.

    Args:
        client: Datastore client.
        generated_at: Timestamp for the header comment (default: now, UTC).

    Returns:
        The script text, newline-terminated.
    """
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    table_names = client.list_tables()

    lines: list[str] = [
        "-- Logical SQL backup (generated by db-backup)",
        f"-- Generated at: {generated_at.isoformat()}",
        "BEGIN;",
        "SET session_replication_role = replica;",
    ]

    if table_names:
        truncates = ", ".join(quote_identifier(t) for t in table_names)
        lines.append(f"TRUNCATE TABLE {truncates} RESTART IDENTITY CASCADE;")

    for table_name in table_names:
        columns = client.get_columns(table_name)
        if not columns:
            continue

        rows = client.select_all(table_name)
        if not rows:
            continue

        table_sql = quote_identifier(table_name)
        column_sql = ", ".join(quote_identifier(c.name) for c in columns)

        for row in rows:
            values_sql = ", ".join(to_sql_literal(row.get(c.name), c.kind) for c in columns)
            lines.append(f"INSERT INTO {table_sql} ({column_sql}) VALUES ({values_sql});")

        lines.extend(_sequence_resets(table_name, columns))

    lines.append("SET session_replication_role = DEFAULT;")
    lines.append("COMMIT;")

    return "\n".join(lines) + "\n"


def write_sql_dump(client: DatabaseClient, output_path: Path) -> Path:
    """Render the logical dump and write it to ``output_path``.

    The file is written only after the whole script has been rendered.
    """
    script = render_sql_dump(client)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(script, encoding="utf-8")
    return output_path


def _sequence_resets(table_name: str, columns: list[ColumnDef]) -> list[str]:
    table_sql = quote_identifier(table_name)
    statements = []
    for column in columns:
        if not column.serial:
            continue
        statements.append(
            f"SELECT setval(pg_get_serial_sequence({quote_literal(table_sql)}, "
            f"{quote_literal(column.name)}), "
            f"COALESCE(MAX({quote_identifier(column.name)}), 0) + 1, false) FROM {table_sql};"
        )
    return statements
