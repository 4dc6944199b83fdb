"""Pydantic models for backup configuration."""

from pathlib import Path

from pydantic import BaseModel, Field


# ============================================================================
# Defaults
# ============================================================================


DEFAULT_CONFIG_FILES = [
    ".env",
    "runtime.config.json",
    "theme.json",
    "tailwind.config.js",
    "components.json",
]


# ============================================================================
# Configuration Models
# ============================================================================


class UploadSource(BaseModel):
    """A directory of uploaded files included in full-system backups."""

    name: str           # directory name under uploads/ inside the archive
    path: str           # source path, relative to project_root unless absolute


def _default_upload_sources() -> list[UploadSource]:
    return [
        UploadSource(name="client-public-uploads", path="client/public/uploads"),
        UploadSource(name="public-uploads", path="public/uploads"),
    ]


class BackupConfig(BaseModel):
    """Explicit configuration passed into every backup/restore operation.

    Built by ``load_backup_config()`` from an optional ``backup.toml`` plus
    environment overrides.  Nothing in the library reads process-wide
    settings on its own.
    """

    database_url: str | None = None
    pg_bin: str | None = None               # directory holding pg_dump/psql
    ssl: bool = False                       # require TLS, skip certificate checks
    project_root: Path = Field(default_factory=Path.cwd)
    backup_dir: Path | None = None          # default: <root>/backups/database
    system_backup_dir: Path | None = None   # default: <root>/backups/system
    upload_sources: list[UploadSource] = Field(default_factory=_default_upload_sources)
    config_files: list[str] = Field(default_factory=lambda: list(DEFAULT_CONFIG_FILES))

    @property
    def database_backup_path(self) -> Path:
        """Directory holding SQL dumps, snapshots and their pointers."""
        if self.backup_dir is not None:
            return self._resolve(self.backup_dir)
        return self.project_root / "backups" / "database"

    @property
    def system_backup_path(self) -> Path:
        """Directory holding full-system archives and file safety copies."""
        if self.system_backup_dir is not None:
            return self._resolve(self.system_backup_dir)
        return self.project_root / "backups" / "system"

    def upload_source_path(self, source: UploadSource) -> Path:
        """Resolve an upload source against the project root."""
        return self._resolve(Path(source.path))

    def config_file_path(self, file_name: str) -> Path:
        """Resolve an allow-listed configuration file against the project root."""
        return self.project_root / file_name

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.project_root / path
