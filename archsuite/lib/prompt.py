"""Terminal prompts, kept apart from the decisions they feed.

Parsing functions are pure (answer text in, choice out, ``None`` when the
answer is not acceptable). The ``ask_*`` helpers loop on a ``Prompter`` until
a parser accepts, so orchestration code can be driven by a scripted prompter
in tests.
"""

from __future__ import annotations

import getpass
from typing import Callable, Optional, Protocol, Sequence, TypeVar

T = TypeVar("T")


class Prompter(Protocol):
    def ask(self, question: str) -> str:
        ...

    def secret(self, question: str) -> str:
        ...

    def show(self, text: str = "") -> None:
        ...


class ConsolePrompter:
    def ask(self, question: str) -> str:
        return input(question)

    def secret(self, question: str) -> str:
        return getpass.getpass(question)

    def show(self, text: str = "") -> None:
        print(text, flush=True)


def parse_yes_no(answer: str) -> Optional[bool]:
    a = answer.strip().lower()
    if a.startswith("y"):
        return True
    if a.startswith("n"):
        return False
    return None


def parse_menu_index(answer: str, count: int) -> Optional[int]:
    """Return the zero-based index for a 1-based menu answer."""

    a = answer.strip()
    if not a.isdigit():
        return None
    n = int(a)
    if 1 <= n <= count:
        return n - 1
    return None


def ask_until(
    prompter: Prompter,
    question: str,
    parse: Callable[[str], Optional[T]],
    *,
    invalid: str,
) -> T:
    while True:
        value = parse(prompter.ask(question))
        if value is not None:
            return value
        prompter.show(invalid)


def ask_yes_no(prompter: Prompter, question: str) -> bool:
    return ask_until(prompter, f"{question} (y/n): ", parse_yes_no, invalid="Please answer y or n.")


def ask_menu(prompter: Prompter, question: str, options: Sequence[str]) -> int:
    for i, label in enumerate(options, start=1):
        prompter.show(f"  {i}. {label}")
    prompter.show()
    return ask_until(
        prompter,
        f"{question} (1-{len(options)}): ",
        lambda a: parse_menu_index(a, len(options)),
        invalid="Invalid selection. Please try again.",
    )


def pause(prompter: Prompter, message: str = "Press Enter to continue to the next step...") -> None:
    prompter.ask(message)
