"""Backup configuration loading: TOML file plus environment overrides."""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path

from db_backup.config.models import BackupConfig, UploadSource
from db_backup.errors import ConfigurationError

DEFAULT_CONFIG_FILE = "backup.toml"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def load_backup_config(
    config_path: Path | None = None,
    env_prefix: str = "",
    environ: Mapping[str, str] | None = None,
) -> BackupConfig:
    """Load backup configuration from TOML and the environment.

    The TOML file is optional when no path is given (``./backup.toml`` is
    used if present).  Environment variables override file values:
    ``DATABASE_URL``, ``PG_BIN``, ``DATABASE_SSL`` and ``BACKUP_DIR``, each
    looked up with ``env_prefix`` prepended.

    Args:
        config_path: Explicit path to a TOML file.
        env_prefix: Prefix for environment variable lookup
            (e.g. ``"APP_"`` reads ``APP_DATABASE_URL``).
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        BackupConfig with file and environment settings merged.

    Raises:
        FileNotFoundError: If ``config_path`` is given but does not exist.
        ConfigurationError: If the file is not valid TOML or a setting
            fails validation.
    """
    if environ is None:
        environ = os.environ

    data: dict = {}
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Backup config not found: {config_path}")
        data = _read_toml(config_path)
    else:
        default_path = Path.cwd() / DEFAULT_CONFIG_FILE
        if default_path.exists():
            config_path = default_path
            data = _read_toml(default_path)

    database = data.get("database", {})
    paths = data.get("paths", {})
    full_backup = data.get("full_backup", {})

    settings: dict = {
        "database_url": database.get("url"),
        "pg_bin": database.get("pg_bin"),
        "ssl": bool(database.get("ssl", False)),
    }

    if "project_root" in paths:
        root = Path(paths["project_root"])
        if not root.is_absolute() and config_path is not None:
            root = config_path.parent / root
        settings["project_root"] = root
    if "backup_dir" in paths:
        settings["backup_dir"] = Path(paths["backup_dir"])
    if "system_backup_dir" in paths:
        settings["system_backup_dir"] = Path(paths["system_backup_dir"])

    if "uploads" in full_backup:
        try:
            settings["upload_sources"] = [
                UploadSource(**item) for item in full_backup["uploads"]
            ]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid [full_backup].uploads in {config_path}: {e}") from e
    if "config_files" in full_backup:
        settings["config_files"] = list(full_backup["config_files"])

    # Environment overrides
    env_url = environ.get(f"{env_prefix}DATABASE_URL")
    if env_url:
        settings["database_url"] = env_url

    env_bin = environ.get(f"{env_prefix}PG_BIN")
    if env_bin:
        settings["pg_bin"] = env_bin

    env_ssl = environ.get(f"{env_prefix}DATABASE_SSL")
    if env_ssl is not None:
        settings["ssl"] = env_ssl.strip().lower() in _TRUE_VALUES

    env_dir = environ.get(f"{env_prefix}BACKUP_DIR")
    if env_dir:
        settings["backup_dir"] = Path(env_dir)

    try:
        return BackupConfig(**settings)
    except ValueError as e:
        raise ConfigurationError(f"Invalid backup configuration: {e}") from e


def resolve_database_url(config: BackupConfig) -> str:
    """Return the configured connection string or fail fast.

    Raises:
        ConfigurationError: If no connection string is configured.
    """
    if not config.database_url or not config.database_url.strip():
        raise ConfigurationError(
            "DATABASE_URL is not set.\n"
            "Set DATABASE_URL in the environment or [database].url in backup.toml."
        )
    return config.database_url.strip()


def _read_toml(path: Path) -> dict:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
