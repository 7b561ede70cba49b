"""Clearing of the internal queue tables inside `.svn/wc.db`.

Subversion records unfinished work in `WORK_QUEUE` and working-copy locks in
`WC_LOCK`. Stale rows in either table make every later command fail with
"previous operation has not finished". Emptying both lets `cleanup` succeed.
"""

from __future__ import annotations

import contextlib
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence


QUEUE_TABLES: tuple[str, ...] = ("WORK_QUEUE", "WC_LOCK")


class QueueCleanError(RuntimeError):
    """Raised when the store cannot be opened or a queue table cannot be cleared.

    `cleared` holds the tables emptied before the failure; those deletions
    are kept.
    """

    def __init__(self, message: str, *, table: str | None = None, cleared: Sequence["TableClearResult"] = ()) -> None:
        super().__init__(message)
        self.table = table
        self.cleared = tuple(cleared)


@dataclass(frozen=True, slots=True)
class TableClearResult:
    table: str
    rows_deleted: int


@contextlib.contextmanager
def open_store(path: Path) -> Iterator[sqlite3.Connection]:
    """Opens an existing store read-write and closes it on exit.

    Raises:
        sqlite3.Error: If the file is missing or is not a usable database.
    """
    # * mode=rw refuses to create a fresh empty database for a missing file.
    con = sqlite3.connect(f"file:{path.as_posix()}?mode=rw", uri=True)
    try:
        yield con
    finally:
        con.close()


def clear_queue_tables(
    con: sqlite3.Connection,
    tables: Sequence[str] = QUEUE_TABLES,
) -> list[TableClearResult]:
    """Deletes every row from each table, in order.

    Args:
        con: Open connection to the store.
        tables: Table names to empty.

    Returns:
        One TableClearResult per table.

    Raises:
        QueueCleanError: On the first failing table. Remaining tables are not
            touched and earlier deletions are not rolled back.
    """
    results: list[TableClearResult] = []
    for table in tables:
        try:
            cur = con.execute(f"DELETE FROM {_quote_identifier(table)}")
            con.commit()
        except sqlite3.Error as exc:
            raise QueueCleanError(f"Could not clear table {table}: {exc}", table=table, cleared=results) from exc
        results.append(TableClearResult(table=table, rows_deleted=max(cur.rowcount, 0)))
    return results


def clean_store(path: Path, tables: Sequence[str] = QUEUE_TABLES) -> list[TableClearResult]:
    """Opens the store, clears the queue tables and closes the connection.

    The connection is closed before this returns, so the store is free for
    the external cleanup tool afterwards.

    Raises:
        QueueCleanError: If the store cannot be opened or a delete fails.
    """
    try:
        with open_store(path) as con:
            return clear_queue_tables(con, tables)
    except sqlite3.Error as exc:
        raise QueueCleanError(f"Could not open {path}: {exc}") from exc


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'
