"""Unit tests for TortoiseProc discovery and invocation."""

from __future__ import annotations

import os
import stat
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from svn_fixer.tortoise import (
    ENV_TORTOISEPROC,
    REGISTRY_CANDIDATES,
    build_cleanup_args,
    find_tortoise_proc,
    repair_working_copy,
    run_cleanup,
)


class _FakeRunner:
    def __init__(self, returncode: int = 0, stdout: str = "", exc: OSError | None = None) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.exc = exc
        self.calls: list[tuple[object, dict]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout)


def _registry(values: dict[str, str]):
    def read(subkey: str, value_name: str) -> str | None:
        assert value_name == "ProcPath"
        return values.get(subkey)

    return read


@mock.patch.dict(os.environ, {ENV_TORTOISEPROC: ""})
class FindTortoiseProcTest(unittest.TestCase):
    def test_first_registry_location_wins(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            first = Path(tmp) / "a.exe"
            second = Path(tmp) / "b.exe"
            first.write_bytes(b"")
            second.write_bytes(b"")
            reader = _registry({REGISTRY_CANDIDATES[0]: str(first), REGISTRY_CANDIDATES[1]: str(second)})
            self.assertEqual(find_tortoise_proc(read_registry=reader), first)

    def test_falls_back_to_wow6432_location(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            proc = Path(tmp) / "TortoiseProc.exe"
            proc.write_bytes(b"")
            reader = _registry({REGISTRY_CANDIDATES[1]: str(proc)})
            self.assertEqual(find_tortoise_proc(read_registry=reader), proc)

    def test_absent_from_both_locations(self) -> None:
        self.assertIsNone(find_tortoise_proc(read_registry=_registry({})))

    def test_registered_path_that_does_not_exist(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            reader = _registry({REGISTRY_CANDIDATES[0]: str(Path(tmp) / "gone.exe")})
            self.assertIsNone(find_tortoise_proc(read_registry=reader))

    def test_override_bypasses_registry(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            proc = Path(tmp) / "custom.exe"
            proc.write_bytes(b"")
            reader = mock.Mock(side_effect=AssertionError("registry must not be read"))
            self.assertEqual(find_tortoise_proc(str(proc), read_registry=reader), proc)

    def test_environment_override(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            proc = Path(tmp) / "env.exe"
            proc.write_bytes(b"")
            with mock.patch.dict(os.environ, {ENV_TORTOISEPROC: str(proc)}):
                self.assertEqual(find_tortoise_proc(read_registry=_registry({})), proc)


class RunCleanupTest(unittest.TestCase):
    def test_arguments_select_cleanup_without_dialogs(self) -> None:
        proc = Path("C:/TortoiseSVN/bin/TortoiseProc.exe")
        root = Path("C:/work/my wc")
        self.assertEqual(
            build_cleanup_args(proc, root),
            [str(proc), "/command:cleanup", f"/path:{root}", "/nodialog"],
        )

    def test_exit_code_zero_is_success(self) -> None:
        runner = _FakeRunner(returncode=0, stdout="cleanup done\n")
        result = run_cleanup(Path("proc.exe"), Path("wc"), runner=runner)

        self.assertTrue(result.ok)
        self.assertEqual(result.returncode, 0)
        self.assertEqual(result.output, "cleanup done")
        self.assertEqual(len(runner.calls), 1)
        _, kwargs = runner.calls[0]
        self.assertEqual(kwargs["stdout"], subprocess.PIPE)
        self.assertEqual(kwargs["stderr"], subprocess.STDOUT)
        self.assertEqual(kwargs["errors"], "replace")
        self.assertNotIn("timeout", kwargs)

    def test_non_zero_exit_is_failure(self) -> None:
        result = run_cleanup(Path("proc.exe"), Path("wc"), runner=_FakeRunner(returncode=1))
        self.assertFalse(result.ok)
        self.assertEqual(result.returncode, 1)
        self.assertIn("1", result.error)

    def test_launch_failure_is_failure(self) -> None:
        runner = _FakeRunner(exc=FileNotFoundError("no such file"))
        result = run_cleanup(Path("proc.exe"), Path("wc"), runner=runner)
        self.assertFalse(result.ok)
        self.assertIsNone(result.returncode)
        self.assertIn("no such file", result.error)

    def test_output_is_trimmed_to_tail(self) -> None:
        stdout = "\n".join(f"line {i}" for i in range(200))
        result = run_cleanup(Path("proc.exe"), Path("wc"), runner=_FakeRunner(returncode=2, stdout=stdout))
        lines = result.output.splitlines()
        self.assertLess(len(lines), 200)
        self.assertEqual(lines[-1], "line 199")


@mock.patch.dict(os.environ, {ENV_TORTOISEPROC: ""})
class RepairWorkingCopyTest(unittest.TestCase):
    def test_not_found_does_not_launch(self) -> None:
        runner = _FakeRunner()
        result = repair_working_copy(Path("wc"), read_registry=_registry({}), runner=runner)
        self.assertFalse(result.ok)
        self.assertIn("not found", result.error)
        self.assertEqual(runner.calls, [])

    def test_found_runs_cleanup_on_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            proc = Path(tmp) / "TortoiseProc.exe"
            proc.write_bytes(b"")
            root = Path(tmp) / "wc"
            runner = _FakeRunner()
            result = repair_working_copy(
                root,
                read_registry=_registry({REGISTRY_CANDIDATES[0]: str(proc)}),
                runner=runner,
            )
            self.assertTrue(result.ok)
            cmd, _ = runner.calls[0]
            self.assertEqual(cmd[0], str(proc))
            self.assertIn(f"/path:{root}", cmd)


def _write_stub(directory: Path, body: str) -> Path:
    stub = directory / "TortoiseProc"
    stub.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    stub.chmod(stub.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return stub


@unittest.skipIf(sys.platform.startswith("win"), "Uses a POSIX shell script as TortoiseProc")
class RunCleanupProcessTest(unittest.TestCase):
    def test_override_executable_is_launched_with_cleanup_arguments(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            stub = _write_stub(Path(tmp), 'for arg in "$@"; do echo "$arg"; done\nexit 0\n')
            root = Path(tmp) / "my wc"

            result = repair_working_copy(root, override=str(stub))

            self.assertTrue(result.ok, result.error)
            self.assertEqual(result.output.splitlines(), ["/command:cleanup", f"/path:{root}", "/nodialog"])

    def test_non_zero_exit_of_real_process(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            stub = _write_stub(Path(tmp), "echo failed\nexit 3\n")
            result = run_cleanup(stub, Path(tmp))
            self.assertFalse(result.ok)
            self.assertEqual(result.returncode, 3)
            self.assertEqual(result.output, "failed")

    def test_undecodable_output_does_not_escape(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            stub = _write_stub(Path(tmp), "printf '\\377\\376 bad\\n'\nexit 1\n")

            result = run_cleanup(stub, Path(tmp))

            self.assertFalse(result.ok)
            self.assertEqual(result.returncode, 1)
            self.assertIn("bad", result.output)
