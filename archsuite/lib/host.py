from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Optional

MEMINFO = Path("/proc/meminfo")


def total_memory_kib(meminfo: Path = MEMINFO) -> int:
    """Return MemTotal from /proc/meminfo in KiB (0 if it cannot be read)."""

    try:
        for line in meminfo.read_text(encoding="utf-8").splitlines():
            if line.startswith("MemTotal:"):
                return int(line.split()[1])
    except (OSError, ValueError, IndexError):
        return 0
    return 0


def is_root() -> bool:
    return os.geteuid() == 0


def is_efi(efi_dir: Path = Path("/sys/firmware/efi")) -> bool:
    return efi_dir.is_dir()


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class HostProbe:
    """Resource queries the builder needs from the host."""

    def __init__(self, meminfo: Optional[Path] = None):
        self.meminfo = meminfo or MEMINFO

    def memory_gb(self) -> int:
        # Same rounding as `free -g`.
        return total_memory_kib(self.meminfo) // (1024 * 1024)
