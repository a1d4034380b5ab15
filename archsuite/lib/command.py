from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def fmt_argv(argv: Sequence[str], redact: Iterable[int] = ()) -> str:
    hidden = set(redact)
    return " ".join("******" if i in hidden else shlex.quote(a) for i, a in enumerate(argv))


def _masked(argv: Sequence[str], redact: Iterable[int]) -> list[str]:
    hidden = set(redact)
    return ["******" if i in hidden else a for i, a in enumerate(argv)]


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    timeout: float | None = None,
    redact: Iterable[int] = (),
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with captured output and consistent logging.

    - Always logs the command.
    - dry_run logs but does not execute.
    - A timeout is reported as returncode 124 (like coreutils ``timeout``).
    - ``redact`` lists argv positions (secrets) masked in the log.
    """

    argv_list = list(argv)
    redact = tuple(redact)
    logger.info("CMD %s", fmt_argv(argv_list, redact))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
            timeout=timeout,
        )
    except FileNotFoundError:
        if check:
            raise CommandError(argv_list, 127, f"{argv_list[0]}: command not found")
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr="command not found")
    except subprocess.TimeoutExpired:
        logger.warning("Timed out after %ss: %s", timeout, fmt_argv(argv_list, redact))
        if check:
            raise CommandError(_masked(argv_list, redact), 124, f"timed out after {timeout}s")
        return CmdResult(argv=argv_list, returncode=124, stdout="", stderr="timed out")

    if p.stdout:
        logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.debug("STDERR %s", p.stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(_masked(argv_list, redact), p.returncode, p.stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)


def run_interactive(
    argv: Sequence[str],
    *,
    check: bool = True,
    cwd: str | None = None,
    dry_run: bool = False,
) -> int:
    """Run a command attached to the terminal (prompts, progress bars).

    Output is not captured; only the exit status is reported.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    if dry_run:
        return 0

    try:
        returncode = subprocess.call(argv_list, cwd=cwd)
    except FileNotFoundError:
        returncode = 127

    if check and returncode != 0:
        raise CommandError(argv_list, returncode)
    return returncode


def privileged(argv: Sequence[str], *, use_sudo: bool = True) -> list[str]:
    """Prefix argv with sudo when not already root."""

    if use_sudo and os.geteuid() != 0:
        return ["sudo", *argv]
    return list(argv)
