"""Helpers to locate a Subversion working-copy root and its metadata store."""

from __future__ import annotations

import os
from pathlib import Path


METADATA_DIRNAME = ".svn"
STORE_FILENAME = "wc.db"


def store_path(root: Path) -> Path:
    """Returns `<root>/.svn/wc.db`."""
    return root / METADATA_DIRNAME / STORE_FILENAME


def has_store(directory: Path) -> bool:
    """Returns True when `directory` directly holds `.svn/wc.db`."""
    return store_path(directory).is_file()


def find_working_copy_root(start: Path) -> Path | None:
    """Finds the nearest ancestor of `start` (inclusive) holding `.svn/wc.db`.

    Args:
        start: Directory where the upward search begins.

    Returns:
        The working-copy root, or None when no ancestor up to and including
        the filesystem root qualifies.
    """
    current = Path(os.path.abspath(start))
    while True:
        if has_store(current):
            return current
        parent = current.parent
        # * Path.parent of a filesystem root is the root itself.
        if _same_path(parent, current):
            return None
        current = parent


def resolve_start_dir(raw: str | os.PathLike[str] | None, *, cwd: Path | None = None) -> Path:
    """Returns the directory the root search starts from.

    A path to an existing directory is used as is, a path to an existing file
    (e.g. `wc.db` clicked in Explorer) starts at the file's folder, and
    anything else falls back to the current directory.
    """
    fallback = Path(os.path.abspath(cwd if cwd is not None else Path.cwd()))
    if raw is None or not str(raw).strip():
        return fallback
    candidate = Path(os.path.abspath(raw))
    if candidate.is_dir():
        return candidate
    if candidate.is_file():
        return candidate.parent
    return fallback


def _same_path(a: Path, b: Path) -> bool:
    # * normcase lower-cases on Windows so "C:\\" and "c:\\" compare equal.
    return os.path.normcase(str(a)) == os.path.normcase(str(b))
