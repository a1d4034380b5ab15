from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Sequence

from .chroot import chroot_cmd
from .command import run_cmd

logger = logging.getLogger(__name__)

GRUB_COLOR_NORMAL = "light-blue/black"
GRUB_COLOR_HIGHLIGHT = "light-cyan/blue"


def install_grub_uefi(*, target_root: str, bootloader_id: str = "GRUB", dry_run: bool = False) -> None:
    chroot_cmd(
        target_root,
        [
            "grub-install",
            "--target=x86_64-efi",
            "--efi-directory=/boot/efi",
            f"--bootloader-id={bootloader_id}",
        ],
        dry_run=dry_run,
    )
    logger.info("GRUB installed (UEFI)")


def parent_disk(partition: str) -> str:
    """/dev/sda3 -> /dev/sda, /dev/nvme0n1p3 -> /dev/nvme0n1."""

    if "nvme" in partition or "mmcblk" in partition:
        return re.sub(r"p[0-9]+$", "", partition)
    return re.sub(r"[0-9]+$", "", partition)


def root_source(target_root: str) -> str:
    return run_cmd(["findmnt", "-n", "-o", "SOURCE", target_root]).stdout.strip()


def install_grub_bios(*, target_root: str, disk: str, dry_run: bool = False) -> None:
    logger.info("Installing GRUB to %s...", disk)
    chroot_cmd(target_root, ["grub-install", "--target=i386-pc", disk], dry_run=dry_run)
    logger.info("GRUB installed (BIOS)")


def edit_grub_defaults(text: str, *, timeout: int, default: int) -> str:
    """Apply our /etc/default/grub settings. Running it twice changes nothing."""

    text = re.sub(r"(?m)^GRUB_TIMEOUT=.*$", f"GRUB_TIMEOUT={timeout}", text)
    text = re.sub(r"(?m)^GRUB_DEFAULT=.*$", f"GRUB_DEFAULT={default}", text)
    text = re.sub(r"(?m)^#GRUB_COLOR_NORMAL=.*$", f'GRUB_COLOR_NORMAL="{GRUB_COLOR_NORMAL}"', text)
    text = re.sub(r"(?m)^#GRUB_COLOR_HIGHLIGHT=.*$", f'GRUB_COLOR_HIGHLIGHT="{GRUB_COLOR_HIGHLIGHT}"', text)
    if not re.search(r"(?m)^GRUB_DISABLE_OS_PROBER=false$", text):
        if text and not text.endswith("\n"):
            text += "\n"
        text += "GRUB_DISABLE_OS_PROBER=false\n"
    return text


def configure_grub(*, target_root: str, timeout: int, default: int, dry_run: bool = False) -> None:
    defaults = Path(target_root) / "etc/default/grub"
    if dry_run:
        logger.info("Would edit %s", defaults)
    elif defaults.exists():
        shutil.copy2(defaults, defaults.with_name("grub.backup"))
        original = defaults.read_text(encoding="utf-8")
        defaults.write_text(edit_grub_defaults(original, timeout=timeout, default=default), encoding="utf-8")
    else:
        logger.warning("%s not found; using GRUB defaults", defaults)

    logger.info("Generating GRUB configuration...")
    chroot_cmd(target_root, ["grub-mkconfig", "-o", "/boot/grub/grub.cfg"], dry_run=dry_run)


def build_initramfs(target_root: str, *, dry_run: bool = False) -> None:
    chroot_cmd(target_root, ["mkinitcpio", "-P"], interactive=True, dry_run=dry_run)


def enable_services(target_root: str, services: Sequence[str], *, dry_run: bool = False) -> None:
    for unit in services:
        logger.info("Enabling %s...", unit)
        chroot_cmd(target_root, ["systemctl", "enable", unit], dry_run=dry_run)
