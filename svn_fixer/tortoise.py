"""Discovery and invocation of TortoiseSVN's `cleanup` command.

TortoiseSVN records the location of `TortoiseProc.exe` in the registry:

  HKLM\\SOFTWARE\\TortoiseSVN             ProcPath
  HKLM\\SOFTWARE\\Wow6432Node\\TortoiseSVN  ProcPath

The first key that holds the value wins.
"""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable


ENV_TORTOISEPROC = "SVN_FIXER_TORTOISEPROC"

REGISTRY_CANDIDATES: tuple[str, ...] = (
    r"SOFTWARE\TortoiseSVN",
    r"SOFTWARE\Wow6432Node\TortoiseSVN",
)
REGISTRY_VALUE = "ProcPath"

_OUTPUT_TAIL_LINES = 40

RegistryReader = Callable[[str, str], "str | None"]
Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True, slots=True)
class CleanupResult:
    """Outcome of one cleanup invocation. `ok` is True only for exit code 0."""

    ok: bool
    returncode: int | None
    output: str
    error: str | None


def find_tortoise_proc(
    override: str | os.PathLike[str] | None = None,
    *,
    read_registry: RegistryReader | None = None,
) -> Path | None:
    """Locates `TortoiseProc.exe`.

    Args:
        override: Explicit path; when None, `SVN_FIXER_TORTOISEPROC` is used
            if set, then the registry candidates in order.
        read_registry: `(subkey, value_name) -> str | None` reader for
            HKEY_LOCAL_MACHINE (default: the Windows registry).

    Returns:
        Path of an existing executable, or None.
    """
    explicit = override if override is not None else os.environ.get(ENV_TORTOISEPROC, "").strip() or None
    if explicit is not None:
        candidate = Path(explicit)
        return candidate if candidate.is_file() else None

    reader = read_registry or _read_hklm_value
    for subkey in REGISTRY_CANDIDATES:
        value = reader(subkey, REGISTRY_VALUE)
        if value:
            candidate = Path(value)
            return candidate if candidate.is_file() else None
    return None


def build_cleanup_args(proc: Path, root: Path) -> list[str]:
    """Returns the TortoiseProc arguments for a silent cleanup of `root`."""
    return [str(proc), "/command:cleanup", f"/path:{root}", "/nodialog"]


def run_cleanup(proc: Path, root: Path, *, runner: Runner = subprocess.run) -> CleanupResult:
    """Runs TortoiseProc cleanup on `root` and waits for it to exit.

    There is no timeout: cleanup of a large working copy can take long.
    Output is captured so it does not interleave with console messages.
    """
    kwargs: dict = {
        "check": False,
        "text": True,
        # ! Console output of TortoiseProc follows the ANSI code page; never fail on it.
        "errors": "replace",
        "stdout": subprocess.PIPE,
        "stderr": subprocess.STDOUT,
        "stdin": subprocess.DEVNULL,
    }
    if sys.platform.startswith("win"):
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    try:
        result = runner(build_cleanup_args(proc, root), **kwargs)
    except OSError as exc:
        return CleanupResult(ok=False, returncode=None, output="", error=f"Could not start {proc}: {exc}")

    output = _tail_lines(result.stdout or "", _OUTPUT_TAIL_LINES)
    if result.returncode != 0:
        return CleanupResult(
            ok=False,
            returncode=result.returncode,
            output=output,
            error=f"TortoiseProc exited with code {result.returncode}",
        )
    return CleanupResult(ok=True, returncode=0, output=output, error=None)


def repair_working_copy(
    root: Path,
    *,
    override: str | os.PathLike[str] | None = None,
    read_registry: RegistryReader | None = None,
    runner: Runner = subprocess.run,
) -> CleanupResult:
    """Finds TortoiseProc and runs cleanup; never launches anything when not found."""
    proc = find_tortoise_proc(override, read_registry=read_registry)
    if proc is None:
        return CleanupResult(
            ok=False,
            returncode=None,
            output="",
            error="TortoiseSVN not found. Install TortoiseSVN (with command line tools) first.",
        )
    return run_cleanup(proc, root, runner=runner)


def _read_hklm_value(subkey: str, value_name: str) -> str | None:
    if not sys.platform.startswith("win"):
        return None
    import winreg  # pylint: disable=import-outside-toplevel

    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, subkey) as key:
            value, _ = winreg.QueryValueEx(key, value_name)
    except OSError:
        return None
    return value if isinstance(value, str) else None


def _tail_lines(text: str, max_lines: int) -> str:
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text.strip()
    return "\n".join(lines[-max_lines:]).strip()
