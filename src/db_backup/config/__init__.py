"""Configuration management: explicit backup settings from TOML and env.

Usage:
    >>> from db_backup.config import load_backup_config, resolve_database_url
"""

from db_backup.config.loader import load_backup_config, resolve_database_url
from db_backup.config.models import BackupConfig, UploadSource

__all__ = ["load_backup_config", "resolve_database_url", "BackupConfig", "UploadSource"]
