"""Explorer context-menu entry for folders, folder backgrounds and `.db` files.

Keys written under HKEY_CLASSES_ROOT:

  Directory\\shell\\<menu>\\command             "<tool>" "%V"
  Directory\\Background\\shell\\<menu>\\command  "<tool>" "%V"
  <.db file type>\\shell\\<menu>\\command       "<tool>" "%1"
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Protocol


MENU_NAME = "Clear SVN work queue"

DIRECTORY_SHELL = r"Directory\shell"
BACKGROUND_SHELL = r"Directory\Background\shell"
STORE_EXTENSION = ".db"


class ShellIntegrationError(RuntimeError):
    """Raised when the context-menu entry cannot be installed or removed."""


class ClassesRoot(Protocol):
    """Minimal view of HKEY_CLASSES_ROOT used by the installer."""

    def key_exists(self, path: str) -> bool:
        ...

    def get_default(self, path: str) -> str | None:
        ...

    def set_value(self, path: str, name: str, value: str) -> None:
        ...

    def delete_tree(self, path: str) -> None:
        ...


def launcher_command() -> str:
    """Returns the quoted command prefix that starts this tool."""
    if getattr(sys, "frozen", False):
        return f'"{Path(sys.executable).resolve()}"'
    python = Path(sys.executable).resolve()
    return f'"{python}" -m svn_fixer'


def install_context_menu(command: str | None = None, *, registry: ClassesRoot | None = None) -> list[str]:
    """Registers the context-menu entry.

    Args:
        command: Command prefix launching the tool (default: launcher_command()).
        registry: HKEY_CLASSES_ROOT accessor (default: the Windows registry).

    Returns:
        Registry paths of the menu keys written.

    Raises:
        ShellIntegrationError: On non-Windows platforms or registry errors.
    """
    reg = registry or _windows_classes_root()
    command = command or launcher_command()
    icon = _icon_source(command)
    written: list[str] = []
    try:
        for shell_key in (DIRECTORY_SHELL, BACKGROUND_SHELL):
            written.append(_write_entry(reg, shell_key, icon=icon, command=f'{command} "%V"'))

        file_shell = _store_file_type_shell(reg)
        if file_shell is not None:
            written.append(_write_entry(reg, file_shell, icon=icon, command=f'{command} "%1"'))
    except OSError as exc:
        raise ShellIntegrationError(f"Install failed: {exc}") from exc
    return written


def uninstall_context_menu(*, registry: ClassesRoot | None = None) -> list[str]:
    """Removes the context-menu entry; missing keys are ignored.

    Returns:
        Registry paths of the menu keys that were removed.

    Raises:
        ShellIntegrationError: On non-Windows platforms or registry errors.
    """
    reg = registry or _windows_classes_root()
    targets = [DIRECTORY_SHELL, BACKGROUND_SHELL]
    removed: list[str] = []
    try:
        file_shell = _store_file_type_shell(reg)
        if file_shell is not None:
            targets.append(file_shell)
        for shell_key in targets:
            menu_key = rf"{shell_key}\{MENU_NAME}"
            if reg.key_exists(menu_key):
                reg.delete_tree(menu_key)
                removed.append(menu_key)
    except OSError as exc:
        raise ShellIntegrationError(f"Uninstall failed: {exc}") from exc
    return removed


def _write_entry(reg: ClassesRoot, shell_key: str, *, icon: str, command: str) -> str:
    menu_key = rf"{shell_key}\{MENU_NAME}"
    reg.set_value(menu_key, "", MENU_NAME)
    reg.set_value(menu_key, "Icon", icon)
    reg.set_value(rf"{menu_key}\command", "", command)
    return menu_key


def _store_file_type_shell(reg: ClassesRoot) -> str | None:
    # * `.db` maps to a file type (ProgID); the verb lives under that type's shell key.
    file_type = reg.get_default(STORE_EXTENSION)
    if not file_type:
        return None
    shell_key = rf"{file_type}\shell"
    if not reg.key_exists(shell_key):
        return None
    return shell_key


def _icon_source(command: str) -> str:
    # * The first quoted token is the executable.
    if command.startswith('"'):
        return command[1:].split('"', 1)[0]
    return command.split(" ", 1)[0]


def _windows_classes_root() -> ClassesRoot:
    if not sys.platform.startswith("win"):
        raise ShellIntegrationError("Context-menu integration is only available on Windows.")
    return _WinRegClassesRoot()


class _WinRegClassesRoot:
    def __init__(self) -> None:
        import winreg  # pylint: disable=import-outside-toplevel

        self._winreg = winreg

    def key_exists(self, path: str) -> bool:
        try:
            with self._winreg.OpenKey(self._winreg.HKEY_CLASSES_ROOT, path):
                return True
        except FileNotFoundError:
            return False

    def get_default(self, path: str) -> str | None:
        try:
            with self._winreg.OpenKey(self._winreg.HKEY_CLASSES_ROOT, path) as key:
                value, _ = self._winreg.QueryValueEx(key, "")
        except FileNotFoundError:
            return None
        return value if isinstance(value, str) else None

    def set_value(self, path: str, name: str, value: str) -> None:
        with self._winreg.CreateKeyEx(self._winreg.HKEY_CLASSES_ROOT, path, 0, self._winreg.KEY_WRITE) as key:
            self._winreg.SetValueEx(key, name, 0, self._winreg.REG_SZ, value)

    def delete_tree(self, path: str) -> None:
        # * winreg.DeleteKey only removes leaf keys; walk children first.
        with self._winreg.OpenKey(self._winreg.HKEY_CLASSES_ROOT, path, 0, self._winreg.KEY_ALL_ACCESS) as key:
            while True:
                try:
                    child = self._winreg.EnumKey(key, 0)
                except OSError:
                    break
                self.delete_tree(rf"{path}\{child}")
        self._winreg.DeleteKey(self._winreg.HKEY_CLASSES_ROOT, path)
