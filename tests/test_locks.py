"""Unit tests for store lock detection helpers."""

from __future__ import annotations

import multiprocessing
import sys
import tempfile
import unittest
from pathlib import Path

from svn_fixer.locks import find_locked_store_files, probe_path_lock, store_lock_targets


def _posix_lock_file(path_raw: str, ready: multiprocessing.Event, stop: multiprocessing.Event) -> None:
    # * Run in a separate process to ensure fcntl locks are not owned by the parent process.
    import fcntl  # pylint: disable=import-outside-toplevel
    import os  # pylint: disable=import-outside-toplevel

    fd = os.open(path_raw, os.O_RDWR)
    try:
        fcntl.lockf(fd, fcntl.LOCK_EX)
        ready.set()
        stop.wait(5.0)
    finally:
        os.close(fd)


class LocksTest(unittest.TestCase):
    def test_lock_targets_include_sqlite_sidecars(self) -> None:
        store = Path("wc") / ".svn" / "wc.db"
        self.assertEqual(
            [p.name for p in store_lock_targets(store)],
            ["wc.db", "wc.db-journal", "wc.db-wal", "wc.db-shm"],
        )

    def test_probe_path_lock_returns_none_for_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertIsNone(probe_path_lock(Path(tmp) / "missing.db"))

    def test_unlocked_store_reports_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = Path(tmp) / "wc.db"
            store.write_bytes(b"x")
            self.assertEqual(find_locked_store_files(store), [])

    def test_store_held_by_another_process_is_reported(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = Path(tmp) / "wc.db"
            store.write_bytes(b"x")

            if sys.platform.startswith("win"):
                # * On Windows, CreateFileW with shareMode=0 must fail while any handle is open.
                fh = store.open("rb")
                try:
                    locked = find_locked_store_files(store)
                finally:
                    fh.close()
                self.assertEqual([lp.path for lp in locked], [store])
                return

            # * POSIX: fcntl locks are per-process, so we lock in a separate process.
            ready = multiprocessing.Event()
            stop = multiprocessing.Event()
            proc = multiprocessing.Process(
                target=_posix_lock_file,
                args=(str(store), ready, stop),
            )
            proc.start()
            try:
                self.assertTrue(ready.wait(5.0), "Expected lock-holder process to acquire lock.")
                locked = find_locked_store_files(store)
                self.assertEqual([lp.path for lp in locked], [store])
            finally:
                stop.set()
                proc.join(timeout=5.0)
                if proc.is_alive():
                    proc.terminate()
                    proc.join(timeout=5.0)
