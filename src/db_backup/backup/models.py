"""Backup document models: storage types, snapshots, manifests, artifacts.

Column storage types are classified once, when column metadata is read
from the catalog, into a closed set of kinds that drives both literal
serialization and snapshot restore casts.

Usage:
    from db_backup.backup.models import ColumnDef, StorageKind, parse_storage_type

    parse_storage_type("_text")
    # StorageType(name='_text', kind=<StorageKind.ARRAY: 'array'>, element='text')

    column = ColumnDef(name="tags", storage_type="_text")
    column.kind.is_array
    # True
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ============================================================================
# Storage types
# ============================================================================


class StorageKind(str, Enum):
    """Closed set of column storage kinds.

    SQL NULL is not a kind: any column may hold it, so the serializer
    handles it before looking at the kind.
    """

    BOOLEAN = "boolean"
    NUMBER = "number"
    TEMPORAL = "temporal"
    ARRAY = "array"
    JSON = "json"
    SCALAR = "scalar"


_BOOLEAN_TYPES = {"bool", "boolean"}
_NUMBER_TYPES = {
    "int2", "int4", "int8", "smallint", "integer", "bigint",
    "float4", "float8", "real", "double precision", "numeric", "decimal",
    "oid", "money",
}
_TEMPORAL_TYPES = {
    "date", "time", "timetz", "timestamp", "timestamptz", "interval",
}
_JSON_TYPES = {"json", "jsonb"}


@dataclass(frozen=True)
class StorageType:
    """A column's declared storage type, classified.

    Attributes:
        name: Catalog type name as reported by ``udt_name`` (``"_text"``,
            ``"jsonb"``, ``"timestamptz"``...).  Empty when unknown.
        kind: Classified storage kind.
        element: Element type name for ``ARRAY`` kinds, else ``None``.
    """

    name: str
    kind: StorageKind
    element: str | None = None

    @property
    def is_array(self) -> bool:
        return self.kind is StorageKind.ARRAY

    @property
    def is_json(self) -> bool:
        return self.kind is StorageKind.JSON

    @property
    def cast_name(self) -> str:
        """Type name used in ``::`` / ``CAST`` clauses."""
        if self.is_array and not self.name:
            return "text[]"
        if self.name != self.name.lower() and not self.name.endswith("[]"):
            return '"' + self.name.replace('"', '""') + '"'
        return self.name or "text"


def parse_storage_type(name: str | None) -> StorageType:
    """Classify a catalog type name into a ``StorageType``.

    Array types are recognised both in catalog form (``_int4``) and in
    SQL form (``integer[]``).  Built-in types are normalised to lower
    case; user-defined names keep their case so quoted types still
    resolve in casts.
    """
    raw_name = (name or "").strip()
    type_name = raw_name.lower()

    if type_name.startswith("_"):
        return StorageType(raw_name, StorageKind.ARRAY, element=raw_name[1:])
    if type_name.endswith("[]"):
        return StorageType(raw_name, StorageKind.ARRAY, element=raw_name[:-2])
    if type_name in _JSON_TYPES:
        return StorageType(type_name, StorageKind.JSON)
    if type_name in _BOOLEAN_TYPES:
        return StorageType(type_name, StorageKind.BOOLEAN)
    if type_name in _NUMBER_TYPES:
        return StorageType(type_name, StorageKind.NUMBER)
    if type_name in _TEMPORAL_TYPES:
        return StorageType(type_name, StorageKind.TEMPORAL)
    return StorageType(raw_name, StorageKind.SCALAR)


# ============================================================================
# Structured snapshot document
# ============================================================================


SNAPSHOT_FORMAT_VERSION = 1
SNAPSHOT_TYPE_TAG = "db-backup-json-snapshot"


class ColumnDef(BaseModel):
    """A column descriptor: name and declared storage type."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    storage_type: str = Field(
        default="",
        validation_alias=AliasChoices("storageType", "storage_type", "type"),
        serialization_alias="storageType",
    )
    serial: bool = False    # fed by a sequence (identity or nextval default)

    @cached_property
    def kind(self) -> StorageType:
        """Classified storage type, decided once per descriptor."""
        return parse_storage_type(self.storage_type)


class TableSnapshot(BaseModel):
    """One table's columns (physical order) and rows."""

    name: str
    columns: list[ColumnDef] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


class DatabaseSnapshot(BaseModel):
    """Dialect-independent document of every base table's schema and rows."""

    model_config = ConfigDict(populate_by_name=True)

    format_version: int = Field(
        default=SNAPSHOT_FORMAT_VERSION,
        validation_alias=AliasChoices("formatVersion", "format_version", "version"),
        serialization_alias="formatVersion",
    )
    generated_at: str = Field(
        validation_alias=AliasChoices("generatedAt", "generated_at"),
        serialization_alias="generatedAt",
    )
    type_tag: str = Field(
        default=SNAPSHOT_TYPE_TAG,
        validation_alias=AliasChoices("typeTag", "type_tag", "type"),
        serialization_alias="typeTag",
    )
    tables: list[TableSnapshot] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return sum(len(t.rows) for t in self.tables)


# ============================================================================
# Full-system archive manifest
# ============================================================================


MANIFEST_FORMAT_VERSION = 1
MANIFEST_TYPE_TAG = "db-backup-full-backup"


class ManifestIncludes(BaseModel):
    """Relative paths of the items actually copied into an archive."""

    model_config = ConfigDict(populate_by_name=True)

    database: str | None = None
    database_snapshot: str | None = Field(
        default=None,
        validation_alias=AliasChoices("databaseSnapshot", "databaseJson", "database_snapshot"),
        serialization_alias="databaseSnapshot",
    )
    uploads: list[str] = Field(default_factory=list)
    config_files: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("configFiles", "config_files"),
        serialization_alias="configFiles",
    )


class Manifest(BaseModel):
    """Archive manifest stored at ``meta/manifest.json``."""

    model_config = ConfigDict(populate_by_name=True)

    format_version: int = Field(
        default=MANIFEST_FORMAT_VERSION,
        validation_alias=AliasChoices("formatVersion", "format_version", "version"),
        serialization_alias="formatVersion",
    )
    type_tag: str = Field(
        default=MANIFEST_TYPE_TAG,
        validation_alias=AliasChoices("typeTag", "type_tag", "type"),
        serialization_alias="typeTag",
    )
    created_at: str = Field(
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    label: str
    includes: ManifestIncludes = Field(default_factory=ManifestIncludes)

    @property
    def paths(self) -> list[str]:
        """Every relative path the archive carries, in manifest order."""
        items: list[str] = []
        if self.includes.database:
            items.append(self.includes.database)
        if self.includes.database_snapshot:
            items.append(self.includes.database_snapshot)
        items.extend(self.includes.uploads)
        items.extend(self.includes.config_files)
        return items


# ============================================================================
# Artifacts and results
# ============================================================================


class ArtifactKind(str, Enum):
    SQL_DUMP = "sql-dump"
    STRUCTURED_SNAPSHOT = "structured-snapshot"
    FULL_ARCHIVE = "full-archive"


class BackupArtifact(BaseModel):
    """A single backup output file.  Immutable once written."""

    model_config = ConfigDict(frozen=True)

    path: Path
    label: str
    timestamp: datetime
    kind: ArtifactKind


class RestoreStrategy(str, Enum):
    """Database restore paths, in fixed preference order."""

    SNAPSHOT = "snapshot"
    NATIVE_CLIENT = "native-client"
    BUILTIN_EXECUTOR = "builtin-executor"


class RestoreResult(BaseModel):
    """Outcome of a successful restore."""

    restored_path: Path
    strategy: RestoreStrategy
    safety_backup: BackupArtifact
    files_backup: Path | None = None
    restored_items: list[str] = Field(default_factory=list)
