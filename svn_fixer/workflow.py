"""Repair run: locate -> back up -> clear queues -> cleanup -> resolve backup.

The run is an explicit state machine. Each non-terminal RunState has one
transition function taking the run context, the collaborators and the
prompter, and returning the next state. Collaborators are plain callables so
every transition can be exercised with fakes.
"""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from svn_fixer import backup as backup_mod
from svn_fixer import locks, queue_cleaner, svn_paths, tortoise
from svn_fixer.backup import BackupArtifact, BackupError
from svn_fixer.console import dim, error, info, plain, success, warn
from svn_fixer.locks import LockedPath
from svn_fixer.prompts import Answer, YesNoPrompter
from svn_fixer.queue_cleaner import QueueCleanError, TableClearResult
from svn_fixer.tortoise import CleanupResult


class RunState(enum.Enum):
    START = "start"
    ROOT_FOUND = "root-found"
    BACKUP_TAKEN = "backup-taken"
    BACKUP_SKIPPED = "backup-skipped"
    CLEANED = "cleaned"
    CLEAN_FAILED = "clean-failed"
    REPAIR_OK = "repair-ok"
    REPAIR_FAILED = "repair-failed"
    RESOLVED = "resolved"
    NO_ROOT = "no-root"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({RunState.RESOLVED, RunState.NO_ROOT, RunState.ABORTED, RunState.CANCELLED})


class RepairOutcome(enum.Enum):
    CLEANED_AND_REPAIRED = "cleaned-and-repaired"
    CLEANED_REPAIR_FAILED = "cleaned-but-repair-failed"
    CLEAN_FAILED = "clean-failed"


class BackupDisposition(enum.Enum):
    DELETED = "deleted"
    RESTORED = "restored"
    KEPT = "kept"
    NO_BACKUP = "no-backup"
    KEPT_AFTER_ERROR = "kept-after-error"


def _nothing_locked(store: Path) -> list[LockedPath]:
    return []


@dataclass(frozen=True, slots=True)
class Collaborators:
    """Side-effecting operations used by the run."""

    find_root: Callable[[Path], Path | None]
    make_writable: Callable[[Path], bool]
    create_backup: Callable[[Path], BackupArtifact]
    clean_store: Callable[[Path], list[TableClearResult]]
    repair: Callable[[Path], CleanupResult]
    restore_backup: Callable[[BackupArtifact], None]
    delete_backup: Callable[[BackupArtifact], None]
    probe_locks: Callable[[Path], list[LockedPath]] = _nothing_locked

    @classmethod
    def default(cls, *, tortoise_proc: str | None = None) -> "Collaborators":
        return cls(
            find_root=svn_paths.find_working_copy_root,
            make_writable=backup_mod.make_writable,
            create_backup=backup_mod.create_backup,
            clean_store=queue_cleaner.clean_store,
            repair=functools.partial(tortoise.repair_working_copy, override=tortoise_proc),
            restore_backup=backup_mod.restore_backup,
            delete_backup=backup_mod.delete_backup,
            probe_locks=locks.find_locked_store_files,
        )


@dataclass(slots=True)
class RunContext:
    """Everything learned during one run."""

    start_dir: Path
    state: RunState = RunState.START
    root: Path | None = None
    store: Path | None = None
    backup: BackupArtifact | None = None
    cleared: list[TableClearResult] = field(default_factory=list)
    cleanup: CleanupResult | None = None
    outcome: RepairOutcome | None = None
    disposition: BackupDisposition | None = None


def on_start(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    root = deps.find_root(ctx.start_dir)
    if root is None:
        error(f"No SVN working copy found at or above: {ctx.start_dir}")
        info("Run this tool inside a directory managed by SVN.")
        return RunState.NO_ROOT

    ctx.root = root
    ctx.store = svn_paths.store_path(root)
    info(f"Found SVN metadata store: {ctx.store}")

    try:
        if deps.make_writable(ctx.store):
            info("Cleared the read-only flag on the store.")
    except OSError as exc:
        error(f"Cannot make the store writable: {exc}")
        error("The store cannot be modified; nothing was changed.")
        return RunState.ABORTED

    locked = deps.probe_locks(ctx.store)
    if locked:
        warn("The store appears to be in use by another process:\n" + locks.format_locked_paths(locked))
        warn("Close TortoiseSVN dialogs, IDEs and running svn commands if the repair fails.")
    return RunState.ROOT_FOUND


def on_root_found(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    try:
        ctx.backup = deps.create_backup(ctx.store)
    except BackupError as exc:
        error(f"Backup failed: {exc}")
        answer = prompter.ask("Continue without a backup?")
        if answer is not Answer.YES:
            if answer is Answer.OTHER:
                warn("Unrecognized answer; treating it as 'no'.")
            info("Cancelled. The store was not modified.")
            return RunState.CANCELLED
        warn("Continuing WITHOUT a backup. Changes to the store cannot be undone by this tool.")
        return RunState.BACKUP_SKIPPED

    success(f"Backup created: {ctx.backup.path} ({ctx.backup.size_bytes:,} bytes)")
    return RunState.BACKUP_TAKEN


def on_backup_done(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    info("Clearing queue tables...")
    try:
        ctx.cleared = deps.clean_store(ctx.store)
    except QueueCleanError as exc:
        ctx.cleared = list(exc.cleared)
        _print_cleared(ctx.cleared)
        error(f"Store operation failed: {exc}")
        ctx.outcome = RepairOutcome.CLEAN_FAILED
        return RunState.CLEAN_FAILED

    _print_cleared(ctx.cleared)
    success("Queue tables cleared.")
    return RunState.CLEANED


def on_cleaned(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    info("Running TortoiseSVN cleanup...")
    ctx.cleanup = deps.repair(ctx.root)
    if ctx.cleanup.ok:
        success("TortoiseSVN cleanup finished successfully.")
        ctx.outcome = RepairOutcome.CLEANED_AND_REPAIRED
        return RunState.REPAIR_OK

    error(f"TortoiseSVN cleanup failed: {ctx.cleanup.error}")
    if ctx.cleanup.output:
        plain(dim(ctx.cleanup.output))
    ctx.outcome = RepairOutcome.CLEANED_REPAIR_FAILED
    return RunState.REPAIR_FAILED


def on_outcome(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    ctx.disposition = resolve_backup(ctx.outcome, ctx.backup, prompter, deps)
    return RunState.RESOLVED


def resolve_backup(
    outcome: RepairOutcome,
    artifact: BackupArtifact | None,
    prompter: YesNoPrompter,
    deps: Collaborators,
) -> BackupDisposition:
    """Deletes, restores or keeps the backup depending on outcome and answer.

    Unrecognized answers always keep the backup untouched.
    """
    if artifact is None:
        info("No backup to process.")
        return BackupDisposition.NO_BACKUP

    if outcome is RepairOutcome.CLEANED_AND_REPAIRED:
        info("Answer y to delete the backup, n to restore the store from it.")
        answer = prompter.ask("Did the repair work?")
        if answer is Answer.YES:
            return _delete(artifact, deps)
        if answer is Answer.NO:
            return _restore(artifact, deps)
    else:
        answer = prompter.ask("Restore the store from the backup?")
        if answer is Answer.YES:
            return _restore(artifact, deps)
        if answer is Answer.NO:
            info(f"Backup kept: {artifact.path}")
            return BackupDisposition.KEPT

    warn("Unrecognized answer; the backup is kept.")
    info(f"Backup location: {artifact.path}")
    return BackupDisposition.KEPT


_TRANSITIONS: dict[RunState, Callable[[RunContext, Collaborators, YesNoPrompter], RunState]] = {
    RunState.START: on_start,
    RunState.ROOT_FOUND: on_root_found,
    RunState.BACKUP_TAKEN: on_backup_done,
    RunState.BACKUP_SKIPPED: on_backup_done,
    RunState.CLEANED: on_cleaned,
    RunState.CLEAN_FAILED: on_outcome,
    RunState.REPAIR_OK: on_outcome,
    RunState.REPAIR_FAILED: on_outcome,
}


def step(ctx: RunContext, deps: Collaborators, prompter: YesNoPrompter) -> RunState:
    """Runs the transition for `ctx.state` and stores the next state."""
    if ctx.state in TERMINAL_STATES:
        raise ValueError(f"Run already finished in state {ctx.state.value}")
    ctx.state = _TRANSITIONS[ctx.state](ctx, deps, prompter)
    return ctx.state


def run_workflow(start_dir: Path, deps: Collaborators, prompter: YesNoPrompter) -> RunContext:
    """Drives the run from START to a terminal state."""
    ctx = RunContext(start_dir=start_dir)
    try:
        while ctx.state not in TERMINAL_STATES:
            step(ctx, deps, prompter)
    except KeyboardInterrupt:
        _report_surviving_backup(ctx)
        raise
    return ctx


def _report_surviving_backup(ctx: RunContext) -> None:
    if ctx.backup is None or not ctx.backup.path.exists():
        return
    warn(f"Interrupted. The backup is kept: {ctx.backup.path}")
    warn(f"Copy it over {ctx.backup.original} to undo the changes to the store.")


def _print_cleared(cleared: list[TableClearResult]) -> None:
    for result in cleared:
        info(f"Table {result.table}: deleted {result.rows_deleted} row(s)")


def _delete(artifact: BackupArtifact, deps: Collaborators) -> BackupDisposition:
    try:
        deps.delete_backup(artifact)
    except BackupError as exc:
        error(str(exc))
        return BackupDisposition.KEPT_AFTER_ERROR
    success(f"Backup deleted: {artifact.path}")
    return BackupDisposition.DELETED


def _restore(artifact: BackupArtifact, deps: Collaborators) -> BackupDisposition:
    try:
        deps.restore_backup(artifact)
    except BackupError as exc:
        error(str(exc))
        return BackupDisposition.KEPT_AFTER_ERROR
    success("Store restored from backup; the changes were undone.")
    return BackupDisposition.RESTORED
