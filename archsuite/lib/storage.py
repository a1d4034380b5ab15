from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .command import run_cmd
from .host import total_memory_kib

logger = logging.getLogger(__name__)

EFI = "efi"
SWAP = "swap"
ROOT = "root"

_TYPECODES = {EFI: "ef00", SWAP: "8200", ROOT: "8300"}
_LABELS = {EFI: "EFI System Partition", SWAP: "Swap Partition", ROOT: "Root Partition"}


@dataclass(frozen=True)
class Partition:
    number: int
    role: str
    # sgdisk size ("512M", "8388608K"); None takes the remaining space.
    size: Optional[str]

    @property
    def typecode(self) -> str:
        return _TYPECODES[self.role]

    @property
    def label(self) -> str:
        return _LABELS[self.role]

    def sgdisk_new(self) -> str:
        end = f"+{self.size}" if self.size else "0"
        return f"{self.number}:0:{end}"


@dataclass(frozen=True)
class PartitionPlan:
    """GPT layout: EFI, optional swap, root on the rest of the disk.

    Whether the requested sizes fit is left to sgdisk, which fails if not.
    """

    disk: str
    efi_size: str = "512M"
    swap_size: str = "0"

    @property
    def has_swap(self) -> bool:
        return self.swap_size not in {"", "0"}

    def partitions(self) -> List[Partition]:
        roles = [(EFI, self.efi_size)]
        if self.has_swap:
            roles.append((SWAP, self.swap_size))
        roles.append((ROOT, None))
        return [Partition(number=i, role=role, size=size) for i, (role, size) in enumerate(roles, start=1)]


@dataclass(frozen=True)
class PartitionResult:
    efi_part: str
    root_part: str
    swap_part: Optional[str]


def resolve_swap_size(setting: str) -> str:
    """Turn the configured swap size into an sgdisk size ("auto" = installed RAM)."""

    s = str(setting).strip()
    if s.lower() == "auto":
        kib = total_memory_kib()
        return f"{kib}K" if kib > 0 else "0"
    return s


def normalize_disk(name: str) -> str:
    name = name.strip()
    if not name.startswith("/dev/"):
        name = f"/dev/{name}"
    return name


def part_name(disk: str, n: int) -> str:
    # nvme/mmcblk/loop devices use a p suffix
    if disk.endswith(tuple("0123456789")):
        return f"{disk}p{n}"
    return f"{disk}{n}"


def list_disks() -> str:
    r = run_cmd(["lsblk", "-d", "-o", "NAME,SIZE,MODEL"], check=False)
    lines = [l for l in r.stdout.splitlines() if "loop" not in l and "boot" not in l]
    return "\n".join(lines)


def wipe_disk(disk: str, *, dry_run: bool = False) -> None:
    logger.info("Wiping existing partition table and signatures on %s...", disk)
    run_cmd(["wipefs", "--all", "--force", disk], dry_run=dry_run)
    run_cmd(["sgdisk", "--zap-all", disk], dry_run=dry_run)


def create_partitions(plan: PartitionPlan, *, dry_run: bool = False) -> None:
    for part in plan.partitions():
        run_cmd(
            [
                "sgdisk",
                "-n",
                part.sgdisk_new(),
                "-t",
                f"{part.number}:{part.typecode}",
                "-c",
                f"{part.number}:{part.label}",
                plan.disk,
            ],
            dry_run=dry_run,
        )
    r = run_cmd(["sgdisk", "-p", plan.disk], dry_run=dry_run)
    if r.stdout:
        logger.info("Partition table:\n%s", r.stdout.rstrip())


def partition_and_format(
    *,
    plan: PartitionPlan,
    target_root: str,
    dry_run: bool = False,
) -> PartitionResult:
    """Wipe, partition, format and mount ``plan.disk`` under ``target_root``.

    Root is mounted at ``target_root``, the ESP at ``target_root/boot/efi``,
    and swap is switched on.
    """

    disk = plan.disk
    logger.info("Partitioning disk=%s swap=%s", disk, plan.swap_size if plan.has_swap else "none")

    wipe_disk(disk, dry_run=dry_run)
    create_partitions(plan, dry_run=dry_run)
    run_cmd(["partprobe", disk], check=False, dry_run=dry_run)

    parts = {p.role: part_name(disk, p.number) for p in plan.partitions()}
    efi_part = parts[EFI]
    root_part = parts[ROOT]
    swap_part = parts.get(SWAP)

    run_cmd(["mkfs.fat", "-F32", efi_part], dry_run=dry_run)
    if swap_part:
        run_cmd(["mkswap", swap_part], dry_run=dry_run)
    run_cmd(["mkfs.ext4", "-F", root_part], dry_run=dry_run)

    run_cmd(["mount", root_part, target_root], dry_run=dry_run)
    run_cmd(["mkdir", "-p", f"{target_root}/boot/efi"], dry_run=dry_run)
    run_cmd(["mount", efi_part, f"{target_root}/boot/efi"], dry_run=dry_run)
    if swap_part:
        run_cmd(["swapon", swap_part], dry_run=dry_run)

    return PartitionResult(efi_part=efi_part, root_part=root_part, swap_part=swap_part)
