"""Backup, restore and cleanup of the working-copy metadata store."""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from tqdm import tqdm


_CHUNK_SIZE = 4 * 1024 * 1024


class BackupError(RuntimeError):
    """Raised when a backup cannot be created, deleted or restored."""

    def __init__(self, message: str, *, backup_path: Path | None = None) -> None:
        super().__init__(message)
        self.backup_path = backup_path


@dataclass(frozen=True, slots=True)
class BackupArtifact:
    """A full copy of the store taken before it was modified."""

    path: Path
    original: Path
    size_bytes: int


def make_writable(path: Path) -> bool:
    """Clears the read-only flag of `path`.

    Returns:
        True if the flag was set and has been cleared, False if the file was
        already writable.

    Raises:
        OSError: If the file is missing or its attributes cannot be changed.
    """
    mode = path.stat().st_mode
    if mode & stat.S_IWRITE:
        return False
    # * On Windows os.chmod only toggles FILE_ATTRIBUTE_READONLY.
    os.chmod(path, mode | stat.S_IWRITE)
    return True


def backup_path_for(path: Path, now: datetime) -> Path:
    """Returns `<stem>_<YYYYMMDDHHMMSS><suffix>.bak` next to `path`."""
    return path.with_name(f"{path.stem}_{now.strftime('%Y%m%d%H%M%S')}{path.suffix}.bak")


def create_backup(path: Path, *, now: datetime | None = None) -> BackupArtifact:
    """Copies `path` to a timestamped sibling file.

    Args:
        path: Store file to back up.
        now: Timestamp used in the backup name (default: current local time).

    Returns:
        BackupArtifact describing the new copy.

    Raises:
        BackupError: If the copy fails, including when a file with the backup
            name already exists (it is never overwritten).
    """
    target = backup_path_for(path, now or datetime.now())
    try:
        size = _copy_file_exclusive(src=path, dst=target, desc="Backup")
    except FileExistsError as exc:
        raise BackupError(f"Backup file already exists: {target}", backup_path=target) from exc
    except OSError as exc:
        raise BackupError(f"Could not back up {path}: {exc}") from exc
    return BackupArtifact(path=target, original=path, size_bytes=size)


def delete_backup(artifact: BackupArtifact) -> None:
    """Deletes the backup file.

    Raises:
        BackupError: If the file cannot be removed; it is left in place.
    """
    try:
        artifact.path.unlink(missing_ok=True)
    except OSError as exc:
        raise BackupError(
            f"Could not delete backup: {exc}. Delete it manually: {artifact.path}",
            backup_path=artifact.path,
        ) from exc


def restore_backup(artifact: BackupArtifact) -> None:
    """Replaces the store with the backup content, then deletes the backup.

    The backup is copied to a temporary sibling of the store first and then
    swapped in with `os.replace`, so the store is either fully restored or
    left as it was. The backup file is only removed once the store holds its
    content.

    Raises:
        BackupError: If any step fails. The backup file is still on disk.
    """
    original = artifact.original
    staging = original.with_name(f"{original.name}.restore-tmp-{time.strftime('%Y%m%d%H%M%S')}")
    try:
        if original.exists():
            make_writable(original)
        _copy_file_exclusive(src=artifact.path, dst=staging, desc="Restore")
        try:
            os.replace(staging, original)
        except OSError:
            _discard(staging)
            raise
    except OSError as exc:
        raise BackupError(
            f"Restore failed: {exc}. Restore manually from backup: {artifact.path}",
            backup_path=artifact.path,
        ) from exc

    try:
        artifact.path.unlink()
    except OSError as exc:
        raise BackupError(
            f"Store restored, but the backup could not be deleted: {exc}. "
            f"Delete it manually: {artifact.path}",
            backup_path=artifact.path,
        ) from exc


def _copy_file_exclusive(*, src: Path, dst: Path, desc: str) -> int:
    # * "xb" fails with FileExistsError instead of clobbering an existing file.
    total = src.stat().st_size
    copied = 0
    with src.open("rb") as rfh:
        wfh = dst.open("xb")
        try:
            with wfh, _progress(total=total, desc=desc) as pbar:
                while True:
                    chunk = rfh.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    wfh.write(chunk)
                    copied += len(chunk)
                    if pbar is not None:
                        pbar.update(len(chunk))
            # * Preserve timestamps and other metadata.
            shutil.copystat(src, dst, follow_symlinks=True)
        except BaseException:
            # ! Only the file this call created is removed.
            _discard(dst)
            raise
    return copied


def _progress(*, total: int, desc: str):
    # * tqdm writes to stderr; stay silent when that is not a terminal.
    if not sys.stderr.isatty():
        return contextlib.nullcontext()
    return tqdm(total=total or None, unit="B", unit_scale=True, unit_divisor=1024, desc=desc, leave=False)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        pass
