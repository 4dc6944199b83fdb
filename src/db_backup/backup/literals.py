"""SQL literal serialization for the logical dump engine.

``to_sql_literal()`` converts one column value plus its classified
storage type into a PostgreSQL literal that parses back into an equal
value.  It is total: unexpected values are logged and degrade to a quoted
generic literal instead of aborting the dump.

Usage:
    from db_backup.backup.literals import to_sql_literal
    from db_backup.backup.models import parse_storage_type

    to_sql_literal(["a", "b"], parse_storage_type("_text"))
    # '{"a","b"}'::_text
    to_sql_literal({"x": 1}, parse_storage_type("jsonb"))
    # '{"x":1}'::jsonb
"""

import json
import logging
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from db_backup.backup.models import StorageType, parse_storage_type

logger = logging.getLogger(__name__)

NULL = "NULL"

_REDUNDANT_QUOTES = ("'", '"')


def quote_literal(value: Any) -> str:
    """Single-quote a value, doubling embedded single quotes."""
    return "'" + str(value).replace("'", "''") + "'"


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def to_json_text(value: Any) -> str:
    """Compact JSON encoding used for JSON literals and snapshot values."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=json_default)


def normalize_array_literal(text: str) -> str:
    """Strip redundant quoting layers around a verbatim array literal.

    Values captured upstream as already-formatted array literals sometimes
    arrive wrapped in extra ``'...'`` or ``"..."`` layers.  Each matching
    outer pair is removed (with surrounding whitespace) until none remain.

    Example:
        >>> normalize_array_literal("'\\"{a,b}\\"'")
        '{a,b}'
    """
    normalized = text.strip()
    while (
        len(normalized) >= 2
        and normalized[0] in _REDUNDANT_QUOTES
        and normalized[-1] == normalized[0]
    ):
        normalized = normalized[1:-1].strip()
    return normalized


def to_pg_array_literal(items: list | tuple) -> str:
    """Render a brace-delimited array literal (without outer quoting).

    Elements are double-quoted with backslashes and double quotes escaped;
    ``None`` becomes an unquoted ``NULL``; nested sequences become nested
    braces.
    """
    parts: list[str] = []
    for item in items:
        if item is None:
            parts.append(NULL)
        elif isinstance(item, (list, tuple)):
            parts.append(to_pg_array_literal(item))
        else:
            text = _element_text(item).replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'"{text}"')
    return "{" + ",".join(parts) + "}"


def array_literal_text(value: Any) -> str:
    """Array literal text (without outer quoting) for an array column value.

    A sequence holding exactly one pre-formatted array literal string, or
    a bare string, is taken verbatim after ``normalize_array_literal()``;
    any other sequence is rendered element by element.
    """
    if isinstance(value, (list, tuple)):
        if len(value) == 1 and isinstance(value[0], str):
            preformatted = normalize_array_literal(value[0])
            if preformatted.startswith("{") and preformatted.endswith("}"):
                return preformatted
        return to_pg_array_literal(value)
    return normalize_array_literal(str(value))


def to_sql_literal(value: Any, storage_type: StorageType | str | None = None) -> str:
    """Serialize one value as a SQL literal for its declared storage type.

    Never raises.  Unanticipated value/type combinations are logged as
    warnings and degrade to a plain quoted literal.

    Args:
        value: Column value as returned by the driver.
        storage_type: Classified storage type, or a raw catalog type name.

    Returns:
        SQL literal text, e.g. ``"NULL"``, ``"42"``, ``"'it''s'"``,
        ``"'{\\"x\\":1}'::jsonb"``.
    """
    try:
        if not isinstance(storage_type, StorageType):
            storage_type = parse_storage_type(storage_type)
        return _serialize(value, storage_type)
    except Exception as e:
        logger.warning(
            "Could not serialize %s value for type %r (%s); using generic literal",
            type(value).__name__,
            getattr(storage_type, "name", storage_type),
            e,
        )
        return _generic_literal(value)


def _serialize(value: Any, storage_type: StorageType) -> str:
    if value is None:
        return NULL

    # JSON columns encode every value structurally, scalars included
    if storage_type.is_json:
        return f"{quote_literal(to_json_text(value))}::{storage_type.cast_name}"

    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"

    if isinstance(value, (int, float, Decimal)):
        return _number_literal(value)

    if isinstance(value, (datetime, date, time)):
        return quote_literal(value.isoformat())

    if isinstance(value, timedelta):
        return quote_literal(_interval_text(value))

    if isinstance(value, (list, tuple)):
        if storage_type.is_array:
            return f"{quote_literal(array_literal_text(value))}::{storage_type.cast_name}"
        return f"{quote_literal(to_pg_array_literal(value))}::text[]"

    if isinstance(value, dict):
        return quote_literal(to_json_text(value))

    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"{quote_literal(_hex_bytes(value))}::bytea"

    if storage_type.is_array:
        return f"{quote_literal(array_literal_text(value))}::{storage_type.cast_name}"

    return quote_literal(value)


def _number_literal(value: int | float | Decimal) -> str:
    if isinstance(value, Decimal):
        return str(value) if value.is_finite() else NULL
    if isinstance(value, float):
        return repr(value) if math.isfinite(value) else NULL
    return str(value)


def _element_text(item: Any) -> str:
    if isinstance(item, bool):
        return "true" if item else "false"
    if isinstance(item, (datetime, date, time)):
        return item.isoformat()
    if isinstance(item, timedelta):
        return _interval_text(item)
    if isinstance(item, dict):
        return to_json_text(item)
    if isinstance(item, (bytes, bytearray, memoryview)):
        return _hex_bytes(item)
    return str(item)


def _interval_text(value: timedelta) -> str:
    return f"{value.total_seconds()!r} seconds"


def _hex_bytes(value: bytes | bytearray | memoryview) -> str:
    return "\\x" + bytes(value).hex()


def _generic_literal(value: Any) -> str:
    try:
        return quote_literal(value)
    except Exception:
        logger.warning("Value of type %s is not representable; writing NULL", type(value).__name__)
        return NULL


def json_default(value: Any) -> Any:
    """``json.dumps`` fallback for driver types with no JSON form."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, timedelta):
        return _interval_text(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _hex_bytes(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)
