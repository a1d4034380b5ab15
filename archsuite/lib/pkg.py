from __future__ import annotations

import logging
from typing import Iterable, List, Protocol, Sequence

from .chroot import chroot_cmd, chroot_has
from .command import privileged, run_cmd, run_interactive

logger = logging.getLogger(__name__)


class PackageManager(Protocol):
    def is_installed(self, package: str) -> bool:
        ...

    def install(self, packages: Sequence[str]) -> None:
        ...


class Pacman:
    """Host package manager (the machine running the builder)."""

    def __init__(self, *, use_sudo: bool = True, dry_run: bool = False):
        self.use_sudo = use_sudo
        self.dry_run = dry_run

    def is_installed(self, package: str) -> bool:
        return run_cmd(["pacman", "-Q", package], check=False).returncode == 0

    def install(self, packages: Sequence[str]) -> None:
        if not packages:
            return
        run_interactive(
            privileged(["pacman", "-S", "--noconfirm", *packages], use_sudo=self.use_sudo),
            dry_run=self.dry_run,
        )


def missing_packages(pm: PackageManager, packages: Iterable[str]) -> List[str]:
    return [p for p in packages if not pm.is_installed(p)]


def pacstrap(target_root: str, packages: Sequence[str], *, dry_run: bool = False) -> None:
    # pacstrap draws its own download progress; keep it on the terminal.
    run_interactive(["pacstrap", target_root, *packages], dry_run=dry_run)


def chroot_install(
    target_root: str,
    packages: Sequence[str],
    *,
    needed: bool = False,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = ["pacman", "-S", "--noconfirm"]
    if needed:
        argv.append("--needed")
    chroot_cmd(target_root, [*argv, *packages], interactive=True, dry_run=dry_run)


def ensure_in_target(target_root: str, binary: str, package: str, *, dry_run: bool = False) -> None:
    """Install ``package`` into the target unless ``binary`` is already on its PATH."""

    if chroot_has(target_root, binary, dry_run=dry_run):
        return
    logger.info("Installing %s...", package)
    chroot_install(target_root, [package], dry_run=dry_run)
