"""Native PostgreSQL client tools: ``pg_dump`` and ``psql``.

Binaries are looked up on ``PATH`` unless ``BackupConfig.pg_bin`` names
the directory that holds them.  A missing or failing ``pg_dump`` raises
``ToolUnavailableError`` so the caller can fall back to the logical dump
engine.
"""

import logging
import os
import subprocess
from pathlib import Path

from db_backup.config.models import BackupConfig
from db_backup.errors import QueryError, ToolUnavailableError

logger = logging.getLogger(__name__)


def tool_path(config: BackupConfig, command: str) -> str:
    """Resolve a native binary, honouring ``pg_bin``."""
    if not config.pg_bin:
        return command
    return str(Path(config.pg_bin) / command)


def tool_env(config: BackupConfig) -> dict[str, str]:
    """Environment for native tool subprocesses."""
    env = dict(os.environ)
    if config.ssl:
        env["PGSSLMODE"] = "require"
    return env


def is_tool_available(config: BackupConfig, command: str) -> bool:
    """Return ``True`` if ``<command> --version`` runs successfully."""
    try:
        subprocess.run(
            [tool_path(config, command), "--version"],
            check=True,
            capture_output=True,
            env=tool_env(config),
        )
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


def run_pg_dump(config: BackupConfig, database_url: str, output_path: Path) -> None:
    """Write a plain-format dump of the whole database to ``output_path``.

    The dump drops and recreates objects on restore (``--clean
    --if-exists``), so it can be replayed over an existing database.

    Raises:
        ToolUnavailableError: If ``pg_dump`` is missing or exits non-zero.
    """
    cmd = [
        tool_path(config, "pg_dump"),
        "--no-owner",
        "--no-privileges",
        "--clean",
        "--if-exists",
        "--encoding=UTF8",
        "--format=plain",
        "--file",
        str(output_path),
        database_url,
    ]
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True, env=tool_env(config))
    except OSError as e:
        raise ToolUnavailableError(f"pg_dump could not be started: {e}") from e
    except subprocess.CalledProcessError as e:
        raise ToolUnavailableError(
            f"pg_dump exited with status {e.returncode}: {(e.stderr or '').strip()}"
        ) from e


def run_psql_script(config: BackupConfig, database_url: str, script_path: Path) -> None:
    """Replay a SQL script with ``psql``, stopping at the first error.

    Raises:
        QueryError: If ``psql`` exits non-zero.
    """
    cmd = [
        tool_path(config, "psql"),
        database_url,
        "--quiet",
        "-v",
        "ON_ERROR_STOP=1",
        "-f",
        str(script_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, env=tool_env(config))
    except OSError as e:
        raise ToolUnavailableError(f"psql could not be started: {e}") from e

    if result.returncode != 0:
        raise QueryError(
            f"psql exited with status {result.returncode}: {(result.stderr or '').strip()}"
        )
    if result.stderr:
        logger.debug("psql: %s", result.stderr.strip())
