"""Filesystem helpers shared by file-based actions."""

import os
import shutil
from pathlib import Path

from nixctl.action.errors import IoFailure, MalformedState


def apply_ownership(path: Path, user: str | None, group: str | None, mode: int | None) -> None:
    """Set owner, group and mode of ``path``, skipping unset values.

    Raises:
        IoFailure: If changing ownership or permissions fails.
    """
    if user is not None or group is not None:
        try:
            shutil.chown(path, user=user, group=group)
        except (OSError, LookupError) as e:
            source = e if isinstance(e, OSError) else OSError(str(e))
            raise IoFailure("change ownership of", path, source) from e
    if mode is not None:
        try:
            os.chmod(path, mode)
        except OSError as e:
            raise IoFailure("set permissions on", path, e) from e


def read_text(path: Path) -> str:
    """Read a UTF-8 file.

    Raises:
        IoFailure: If the file cannot be read.
        MalformedState: If the file is not valid UTF-8.
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedState(f"File is not valid UTF-8: {e.reason} at byte {e.start}", path) from e
    except OSError as e:
        raise IoFailure("read", path, e) from e


def write_text(path: Path, content: str) -> None:
    """Write a UTF-8 file atomically via a sibling temporary file.

    Raises:
        IoFailure: If the file cannot be written.
    """
    tmp_path = path.with_name(f".{path.name}.nixctl-tmp")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise IoFailure("write", path, e) from e


def remove_file(path: Path) -> None:
    """Remove a file or symlink, tolerating its absence.

    Raises:
        IoFailure: If the file exists but cannot be removed.
    """
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise IoFailure("remove", path, e) from e
