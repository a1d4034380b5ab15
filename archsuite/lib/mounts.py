from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from .command import privileged, run_cmd

logger = logging.getLogger(__name__)


def is_mountpoint(path: str | Path) -> bool:
    return run_cmd(["mountpoint", "-q", str(path)], check=False).returncode == 0


def umount(path: str | Path, *, recursive: bool = False, use_sudo: bool = False, dry_run: bool = False) -> bool:
    """Unmount ``path``. A path that is not mounted counts as success."""

    if not dry_run and not is_mountpoint(path):
        logger.debug("%s is not mounted", path)
        return True
    argv = ["umount", "-R", str(path)] if recursive else ["umount", str(path)]
    r = run_cmd(privileged(argv, use_sudo=use_sudo), check=False, dry_run=dry_run)
    if not r.ok:
        logger.warning("Failed to unmount %s", path)
    return r.ok


class ScratchSpace(Protocol):
    work_dir: Path
    cache_dir: Path

    def setup(self) -> None:
        ...

    def clear(self) -> None:
        ...

    def cleanup(self) -> None:
        ...


class TmpfsScratch:
    """Memory-backed work and cache directories for image builds.

    The mounts are owned by this object only; ``cleanup`` unmounts and removes
    them on every exit path.
    """

    def __init__(
        self,
        base: Path,
        *,
        work_size: str,
        cache_size: str,
        use_sudo: bool = True,
    ):
        self.base = base
        self.work_dir = base / "work"
        self.cache_dir = base / "cache"
        self.work_size = work_size
        self.cache_size = cache_size
        self.use_sudo = use_sudo

    def _sudo(self, argv: list[str]) -> list[str]:
        return privileged(argv, use_sudo=self.use_sudo)

    def setup(self) -> None:
        logger.debug("Setting up tmpfs mounts under %s", self.base)
        run_cmd(self._sudo(["mkdir", "-p", str(self.work_dir), str(self.cache_dir)]))

        for path, size in [(self.work_dir, self.work_size), (self.cache_dir, self.cache_size)]:
            if not is_mountpoint(path):
                run_cmd(self._sudo(["mount", "-t", "tmpfs", "-o", f"size={size},noatime", "tmpfs", str(path)]))
                logger.debug("Mounted tmpfs %s (%s)", path, size)

        user = os.environ.get("USER") or str(os.getuid())
        run_cmd(self._sudo(["chown", "-R", f"{user}:{user}", str(self.base)]), check=False)

    def clear(self) -> None:
        for d in (self.work_dir, self.cache_dir):
            if not d.is_dir():
                continue
            children = [str(c) for c in d.iterdir()]
            if children:
                run_cmd(self._sudo(["rm", "-rf", *children]), check=False)

    def cleanup(self) -> None:
        logger.debug("Cleaning up tmpfs mounts...")
        for path in (self.work_dir, self.cache_dir):
            umount(path, use_sudo=self.use_sudo)
        if self.base.exists():
            run_cmd(self._sudo(["rm", "-rf", str(self.base)]), check=False)

