"""CLI for svn-fixer."""

from __future__ import annotations

import argparse
import sys

from svn_fixer.console import error, info, success, warn
from svn_fixer.prompts import ConsolePrompter, is_interactive, wait_for_key
from svn_fixer.shell_menu import ShellIntegrationError, install_context_menu, uninstall_context_menu
from svn_fixer.svn_paths import resolve_start_dir
from svn_fixer.tortoise import ENV_TORTOISEPROC
from svn_fixer.workflow import Collaborators, RunState, run_workflow


# * Windows-style switches accepted for compatibility with existing shortcuts.
_LEGACY_SWITCHES = {
    "/install": "--install",
    "/uninstall": "--uninstall",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="svn-fixer",
        description=(
            "Clear the WORK_QUEUE and WC_LOCK tables of a stuck SVN working copy, "
            "then run TortoiseSVN cleanup. The metadata store is backed up first."
        ),
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Directory inside the working copy (default: current directory).",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--install",
        action="store_true",
        help="Add the Explorer context-menu entry and exit (Windows, run as administrator).",
    )
    mode.add_argument(
        "--uninstall",
        action="store_true",
        help="Remove the Explorer context-menu entry and exit.",
    )
    parser.add_argument(
        "--tortoise-proc",
        default=None,
        help=f"Path to TortoiseProc.exe (default: ${ENV_TORTOISEPROC}, then the registry).",
    )
    parser.add_argument(
        "--no-pause",
        action="store_true",
        help="Do not wait for a key press before exiting.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser().parse_args(_normalize_legacy_switches(argv))

    try:
        if args.install:
            return _cmd_install()
        if args.uninstall:
            return _cmd_uninstall()
        exit_code = _cmd_repair(path=args.path, tortoise_proc=args.tortoise_proc)
    except KeyboardInterrupt:
        # * Handle Ctrl+C gracefully in prompts and while TortoiseProc runs.
        print(file=sys.stderr, flush=True)
        warn("Interrupted by user (Ctrl+C).")
        return 130

    if not args.no_pause and is_interactive():
        try:
            wait_for_key()
        except KeyboardInterrupt:
            pass
    return exit_code


def _cmd_repair(*, path: str | None, tortoise_proc: str | None) -> int:
    start_dir = resolve_start_dir(path)
    ctx = run_workflow(
        start_dir,
        Collaborators.default(tortoise_proc=tortoise_proc),
        ConsolePrompter(),
    )
    return 0 if ctx.state is RunState.RESOLVED else 1


def _cmd_install() -> int:
    try:
        keys = install_context_menu()
    except ShellIntegrationError as exc:
        error(str(exc))
        info("Run again as administrator.")
        return 2
    for key in keys:
        info(f"HKCR\\{key}")
    success("Context menu installed.")
    return 0


def _cmd_uninstall() -> int:
    try:
        keys = uninstall_context_menu()
    except ShellIntegrationError as exc:
        error(str(exc))
        info("Run again as administrator.")
        return 2
    for key in keys:
        info(f"HKCR\\{key}")
    success("Context menu removed.")
    return 0


def _normalize_legacy_switches(argv: list[str]) -> list[str]:
    return [_LEGACY_SWITCHES.get(arg.lower(), arg) for arg in argv]
