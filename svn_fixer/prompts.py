"""Interactive prompts for the repair run."""

from __future__ import annotations

import enum
import sys
from typing import Protocol


class Answer(enum.Enum):
    """Reply to a yes/no question. OTHER means the reply was not understood."""

    YES = "yes"
    NO = "no"
    OTHER = "other"


class YesNoPrompter(Protocol):
    """Anything able to ask the operator a yes/no question."""

    def ask(self, question: str) -> Answer:
        ...


def is_interactive() -> bool:
    """Returns True when stdin/stdout are interactive terminals."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def parse_answer(raw: str | None) -> Answer:
    """Maps free-form text to an Answer.

    Args:
        raw: Text typed by the user (None when input is closed).

    Returns:
        YES for "y"/"yes", NO for "n"/"no" (case-insensitive), else OTHER.
    """
    if raw is None:
        return Answer.OTHER
    text = raw.strip().lower()
    if text in ("y", "yes"):
        return Answer.YES
    if text in ("n", "no"):
        return Answer.NO
    return Answer.OTHER


class ConsolePrompter:
    """Asks questions on the console; one attempt per question, no re-prompting."""

    def ask(self, question: str) -> Answer:
        try:
            raw = input(f"{question} (y/n): ")
        except EOFError:
            # * Closed stdin (e.g. piped run) counts as an unrecognized reply.
            return Answer.OTHER
        return parse_answer(raw)


def wait_for_key(message: str = "Press any key to exit...") -> None:
    """Blocks until a key is pressed (Enter on non-Windows consoles)."""
    print(f"\n{message}", flush=True)
    if sys.platform.startswith("win"):
        import msvcrt  # pylint: disable=import-outside-toplevel

        msvcrt.getwch()
        return
    try:
        input()
    except EOFError:
        return
