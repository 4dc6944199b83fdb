"""CLI for database and full-system backup and restore.

Usage:
    db-backup backup nightly
    db-backup restore --force
    db-backup restore backups/database/backup_manual_2026-01-15T10-00-00-000000Z.sql --force
    db-backup full-backup weekly
    db-backup full-restore backups/system/full_backup_weekly_2026-01-15T10-00-00-000000Z.zip --force
    db-backup snapshot
    db-backup validate backups/database/snapshot_manual_2026-01-15T10-00-00-000000Z.json
    db-backup latest
    db-backup --config backup.toml --env-prefix APP_ backup

Commands:
    backup        - Write a SQL dump (pg_dump, or the built-in fallback)
    restore       - Restore the database from a dump or snapshot (requires --force)
    full-backup   - Archive database, uploads and config files into one zip
    full-restore  - Restore everything from a full archive (requires --force)
    snapshot      - Write a structured JSON snapshot
    validate      - Check a snapshot or full archive without touching the database
    latest        - Show the pointer files
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_backup.backup.archive import full_backup, read_manifest
from db_backup.backup.backup_restore import (
    backup_database,
    restore_database,
    snapshot_database,
)
from db_backup.backup.models import RestoreResult
from db_backup.backup.pointers import (
    LATEST_BACKUP,
    LATEST_FULL_BACKUP,
    LATEST_RESTORED,
    LATEST_RESTORED_FULL,
    read_pointer,
)
from db_backup.backup.snapshot import validate_snapshot
from db_backup.backup.system_restore import full_restore
from db_backup.config.loader import load_backup_config
from db_backup.config.models import BackupConfig
from db_backup.errors import BackupError, ConfirmationRequiredError

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config(args: argparse.Namespace) -> BackupConfig:
    config_path = getattr(args, "config", None)
    return load_backup_config(
        config_path=Path(config_path) if config_path else None,
        env_prefix=getattr(args, "env_prefix", ""),
    )


def _report_error(action: str, error: Exception) -> int:
    if isinstance(error, ConfirmationRequiredError):
        console.print(f"[yellow]{error}[/yellow]")
    else:
        console.print(f"[red]{action} failed: {error}[/red]")
    return 1


def _print_restore_result(title: str, result: RestoreResult) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Restored from", str(result.restored_path))
    table.add_row("Strategy", result.strategy.value)
    table.add_row("Safety backup", str(result.safety_backup.path))
    if result.files_backup is not None:
        table.add_row("Previous files", str(result.files_backup))
    if result.restored_items:
        table.add_row("Restored items", "\n".join(result.restored_items))

    console.print(table)


# ============================================================================
# Command implementations
# ============================================================================


def cmd_backup(args: argparse.Namespace) -> int:
    """Write a SQL dump of the database.

    Returns:
        0 on success, 1 on failure.
    """
    try:
        config = _load_config(args)
        artifact = backup_database(config, label=args.label)
    except (BackupError, OSError) as e:
        return _report_error("Backup", e)

    console.print(f"[bold green]v[/bold green] Backup written: [cyan]{artifact.path}[/cyan]")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore the database from a dump or snapshot.

    Returns:
        0 on success, 1 on failure or missing ``--force``.
    """
    try:
        config = _load_config(args)
        result = restore_database(config, path=args.path, force=args.force)
    except (BackupError, OSError) as e:
        return _report_error("Restore", e)

    _print_restore_result("Database Restored", result)
    return 0


def cmd_full_backup(args: argparse.Namespace) -> int:
    """Write a full-system archive."""
    try:
        config = _load_config(args)
        artifact = full_backup(config, label=args.label)
        manifest = read_manifest(artifact.path)
    except (BackupError, OSError) as e:
        return _report_error("Full backup", e)

    console.print(f"[bold green]v[/bold green] Full backup written: [cyan]{artifact.path}[/cyan]")
    for item in manifest.paths:
        console.print(f"  {item}", style="dim")
    return 0


def cmd_full_restore(args: argparse.Namespace) -> int:
    """Restore database and files from a full-system archive."""
    try:
        config = _load_config(args)
        result = full_restore(config, path=args.path, force=args.force)
    except (BackupError, OSError) as e:
        return _report_error("Full restore", e)

    _print_restore_result("Full System Restored", result)
    return 0


def cmd_snapshot(args: argparse.Namespace) -> int:
    """Write a structured JSON snapshot."""
    try:
        config = _load_config(args)
        artifact = snapshot_database(config, label=args.label)
    except (BackupError, OSError) as e:
        return _report_error("Snapshot", e)

    console.print(f"[bold green]v[/bold green] Snapshot written: [cyan]{artifact.path}[/cyan]")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a snapshot document or full archive.

    Reads only the local file -- no database calls.

    Returns:
        0 if valid, 1 otherwise.
    """
    path = Path(args.path)

    if path.suffix.lower() == ".zip":
        try:
            manifest = read_manifest(path)
        except (BackupError, OSError) as e:
            return _report_error("Validation", e)

        table = Table(title=f"Full Backup: {manifest.label}", show_header=True, header_style="bold")
        table.add_column("Item")
        for item in manifest.paths:
            table.add_row(item)
        console.print(table)
        console.print(f"Created: {manifest.created_at}", style="dim")
        return 0

    report = validate_snapshot(path)
    for warning in report["warnings"]:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    for error in report["errors"]:
        console.print(f"[red]error:[/red] {error}")

    if report["valid"]:
        console.print(f"[bold green]v[/bold green] Snapshot is valid: [cyan]{path}[/cyan]")
        return 0
    return 1


def cmd_latest(args: argparse.Namespace) -> int:
    """Show where each pointer file points.

    Returns:
        0 on success, 1 if configuration cannot be loaded.
    """
    try:
        config = _load_config(args)
    except (BackupError, OSError) as e:
        return _report_error("Loading configuration", e)

    pointers = [
        ("Latest backup", config.database_backup_path / LATEST_BACKUP),
        ("Latest restored", config.database_backup_path / LATEST_RESTORED),
        ("Latest full backup", config.system_backup_path / LATEST_FULL_BACKUP),
        ("Latest full restore", config.system_backup_path / LATEST_RESTORED_FULL),
    ]

    table = Table(title="Pointers", show_header=False)
    table.add_column("Pointer", style="dim")
    table.add_column("Target")
    for name, pointer_file in pointers:
        target = read_pointer(pointer_file)
        table.add_row(name, str(target) if target else "[dim]none[/dim]")

    console.print(table)
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="PostgreSQL and full-system backup and restore",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to backup.toml (default: ./backup.toml if present)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DATABASE_URL)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # backup command
    p_backup = subparsers.add_parser("backup", help="Write a SQL dump of the database")
    p_backup.add_argument("label", nargs="?", default="manual", help="Backup label")
    p_backup.set_defaults(func=cmd_backup)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore the database (destructive)")
    p_restore.add_argument("path", nargs="?", default=None, help="Dump or snapshot (default: latest)")
    p_restore.add_argument(
        "--force",
        action="store_true",
        help="Confirm that current data will be replaced",
    )
    p_restore.set_defaults(func=cmd_restore)

    # full-backup command
    p_full_backup = subparsers.add_parser(
        "full-backup",
        help="Archive database, uploads and config files",
    )
    p_full_backup.add_argument("label", nargs="?", default="manual", help="Backup label")
    p_full_backup.set_defaults(func=cmd_full_backup)

    # full-restore command
    p_full_restore = subparsers.add_parser(
        "full-restore",
        help="Restore database and files from a full archive (destructive)",
    )
    p_full_restore.add_argument("path", nargs="?", default=None, help="Archive (default: latest)")
    p_full_restore.add_argument(
        "--force",
        action="store_true",
        help="Confirm that current data and files will be replaced",
    )
    p_full_restore.set_defaults(func=cmd_full_restore)

    # snapshot command
    p_snapshot = subparsers.add_parser("snapshot", help="Write a structured JSON snapshot")
    p_snapshot.add_argument("label", nargs="?", default="manual", help="Snapshot label")
    p_snapshot.set_defaults(func=cmd_snapshot)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Validate a snapshot or full archive (no database calls)",
    )
    p_validate.add_argument("path", help="Snapshot (.json) or archive (.zip)")
    p_validate.set_defaults(func=cmd_validate)

    # latest command
    p_latest = subparsers.add_parser("latest", help="Show pointer files")
    p_latest.set_defaults(func=cmd_latest)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
