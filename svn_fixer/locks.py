"""Cross-platform checks for files held open by another process.

The repair run does not take a lock of its own. This probe only tells the
operator when something (TortoiseSVN's cache, an IDE, a running `svn`) still
has the metadata store open.
"""

from __future__ import annotations

import errno
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


STORE_SIDECAR_SUFFIXES = ("-journal", "-wal", "-shm")


@dataclass(frozen=True, slots=True)
class LockedPath:
    """Represents a locked path detected by the lock probe."""

    path: Path
    reason: str


def store_lock_targets(store: Path) -> list[Path]:
    """Returns the store file followed by its SQLite sidecar files."""
    return [store, *(store.with_name(store.name + suffix) for suffix in STORE_SIDECAR_SUFFIXES)]


def find_locked_store_files(store: Path) -> list[LockedPath]:
    """Probes the store and its sidecars; returns the ones that look locked."""
    return [lp for lp in (probe_path_lock(p) for p in store_lock_targets(store)) if lp is not None]


def format_locked_paths(locked: Iterable[LockedPath]) -> str:
    return "\n".join(f"- {lp.path}: {lp.reason}" for lp in locked)


def probe_path_lock(path: Path) -> LockedPath | None:
    """Returns lock info if a path is locked, else None.

    Notes:
        - If the path does not exist, it's treated as unlocked (nothing to lock).
        - On Windows we use CreateFile with shareMode=0 to detect any open handle.
        - On POSIX we use `fcntl.lockf` exclusive lock (non-blocking).
    """
    if not path.exists():
        return None

    if sys.platform.startswith("win"):
        return _probe_windows_share_none(path)

    return _probe_posix_lockf(path)


def _probe_posix_lockf(path: Path) -> LockedPath | None:
    # * Advisory locks, compatible with SQLite's fcntl locking model.
    import fcntl  # pylint: disable=import-outside-toplevel

    try:
        fd = os.open(path, os.O_RDWR)
    except PermissionError:
        # * A read-only store cannot be probed for write locks; treat as unlocked.
        return None
    try:
        try:
            fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            if exc.errno in (errno.EACCES, errno.EAGAIN):
                return LockedPath(path=path, reason=f"posix lockf denied (errno={exc.errno})")
            return LockedPath(path=path, reason=f"posix lockf error (errno={exc.errno})")
        return None
    finally:
        os.close(fd)


def _probe_windows_share_none(path: Path) -> LockedPath | None:
    # * CreateFileW shareMode=0 fails if ANY handle is already open (sharing violation).
    import ctypes  # pylint: disable=import-outside-toplevel
    from ctypes import wintypes  # pylint: disable=import-outside-toplevel

    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    create_file_w = kernel32.CreateFileW
    create_file_w.argtypes = [
        wintypes.LPCWSTR,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.LPVOID,
        wintypes.DWORD,
        wintypes.DWORD,
        wintypes.HANDLE,
    ]
    create_file_w.restype = wintypes.HANDLE

    close_handle = kernel32.CloseHandle
    close_handle.argtypes = [wintypes.HANDLE]
    close_handle.restype = wintypes.BOOL

    generic_read = 0x80000000
    share_none = 0x00000000
    open_existing = 3
    file_attribute_normal = 0x00000080
    invalid_handle_value = wintypes.HANDLE(-1).value

    handle = create_file_w(
        str(path),
        generic_read,
        share_none,
        None,
        open_existing,
        file_attribute_normal,
        None,
    )
    if handle == invalid_handle_value:
        winerr = ctypes.get_last_error()
        # * 32 = ERROR_SHARING_VIOLATION, 33 = ERROR_LOCK_VIOLATION
        if winerr in (32, 33):
            return LockedPath(path=path, reason=f"in use by another process (winerr={winerr})")
        return LockedPath(path=path, reason=f"CreateFileW failed (winerr={winerr})")

    close_handle(handle)
    return None
