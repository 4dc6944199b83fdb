"""Pointer files: one-line references to the most recent artifact.

A pointer holds the absolute path of the latest artifact in its category.
Pointers are replaced atomically and only after the operation they record
has fully succeeded.  A pointer whose target no longer exists reads as
absent.
"""

import os
import tempfile
from pathlib import Path

LATEST_BACKUP = "latest.txt"
LATEST_FULL_BACKUP = "latest_full.txt"
LATEST_RESTORED = "latest_restored.txt"
LATEST_RESTORED_FULL = "latest_restored_full.txt"


def write_pointer(pointer_file: Path, target: Path) -> None:
    """Atomically point ``pointer_file`` at ``target``."""
    pointer_file.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{pointer_file.name}.", dir=pointer_file.parent
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(target.resolve()))
        os.replace(tmp_name, pointer_file)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_pointer(pointer_file: Path) -> Path | None:
    """Return the pointer's target, or ``None`` if unset or missing on disk."""
    if not pointer_file.exists():
        return None
    target = pointer_file.read_text(encoding="utf-8").strip()
    if not target:
        return None
    path = Path(target)
    if not path.exists():
        return None
    return path
