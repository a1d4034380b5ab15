from __future__ import annotations

import logging
from typing import Sequence

from .command import CmdResult, run_cmd, run_interactive

logger = logging.getLogger(__name__)


def chroot_cmd(
    target_root: str,
    argv: Sequence[str],
    *,
    check: bool = True,
    interactive: bool = False,
    input_text: str | None = None,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command inside the target root through arch-chroot.

    ``interactive`` attaches the terminal (passwd, makepkg); stdout/stderr are
    then not captured.
    """

    full = ["arch-chroot", target_root, *argv]
    if interactive:
        rc = run_interactive(full, check=check, dry_run=dry_run)
        return CmdResult(argv=full, returncode=rc, stdout="", stderr="")
    return run_cmd(full, check=check, input_text=input_text, dry_run=dry_run)


def chroot_has(target_root: str, binary: str, *, dry_run: bool = False) -> bool:
    """True if ``binary`` resolves on the target's PATH."""

    if dry_run:
        return True
    return chroot_cmd(target_root, ["which", binary], check=False).ok


def user_exists(target_root: str, username: str, *, dry_run: bool = False) -> bool:
    if dry_run:
        return False
    return chroot_cmd(target_root, ["id", username], check=False).ok
