"""Exception hierarchy for backup and restore operations.

Fatal conditions are raised and propagate to the caller (the CLI reports
them and exits non-zero).  ``ToolUnavailableError`` is the one condition
that is recovered locally: the orchestrators catch it and switch to the
built-in fallback engine.
"""


class BackupError(Exception):
    """Base class for all backup/restore failures."""

    pass


class ConfigurationError(BackupError):
    """Raised when configuration is missing or invalid."""

    pass


class ToolUnavailableError(BackupError):
    """Raised when a native binary (``pg_dump``/``psql``) is missing or fails."""

    pass


class QueryError(BackupError):
    """Raised when a datastore query fails during dump or restore."""

    pass


class BackupNotFoundError(BackupError):
    """Raised when no restorable artifact can be resolved."""

    pass


class ConfirmationRequiredError(BackupError):
    """Raised when a destructive restore is attempted without ``force``."""

    pass


class SnapshotFormatError(BackupError):
    """Raised when a snapshot or manifest document is malformed."""

    pass
