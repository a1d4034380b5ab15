from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..errors import EnvironmentCheckError, UserAborted
from ..lib.bootloader import (
    build_initramfs,
    configure_grub,
    enable_services,
    install_grub_bios,
    install_grub_uefi,
    parent_disk,
    root_source,
)
from ..lib.chroot import chroot_has
from ..lib.host import is_efi
from ..lib.prompt import ask_yes_no
from . import StepContext, require_installed_target, set_password, step_main

logger = logging.getLogger(__name__)

ESSENTIAL_SERVICES = ("NetworkManager", "systemd-timesyncd", "fstrim.timer")


class BootloaderStep:
    """GRUB, initramfs, essential services and the root password."""

    step_id = "bootloader"

    def __init__(self, efi_dir: Path = Path("/sys/firmware/efi")):
        self.efi_dir = efi_dir

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.cfg
        p = ctx.prompter
        require_installed_target(ctx, efi=True)
        if not chroot_has(ctx.target, "grub-install", dry_run=ctx.dry_run):
            raise EnvironmentCheckError("GRUB is not installed. Please run base-setup first.")

        uefi = is_efi(self.efi_dir)
        if uefi:
            logger.info("UEFI boot mode detected.")
        else:
            logger.warning("BIOS boot mode detected. This installer is optimized for UEFI systems.")
            if not ask_yes_no(p, "Do you want to continue with BIOS setup?"):
                raise UserAborted("GRUB setup cancelled")

        if not ask_yes_no(p, "Do you want to continue with GRUB installation?"):
            p.show("GRUB setup cancelled.")
            raise UserAborted("GRUB setup cancelled")

        if uefi:
            install_grub_uefi(target_root=ctx.target, bootloader_id=cfg.bootloader_id, dry_run=ctx.dry_run)
        else:
            disk = parent_disk(root_source(ctx.target))
            install_grub_bios(target_root=ctx.target, disk=disk, dry_run=ctx.dry_run)

        configure_grub(
            target_root=ctx.target,
            timeout=cfg.grub_timeout,
            default=cfg.grub_default,
            dry_run=ctx.dry_run,
        )
        logger.info("Generating initial ramdisk...")
        build_initramfs(ctx.target, dry_run=ctx.dry_run)
        enable_services(ctx.target, ESSENTIAL_SERVICES, dry_run=ctx.dry_run)

        p.show("You need to set a password for the root user.")
        set_password(ctx)

        p.show("Boot configuration:")
        p.show(f"  Boot mode: {'uefi' if uefi else 'bios'}")
        p.show(f"  GRUB timeout: {cfg.grub_timeout} seconds")
        p.show(f"  Default entry: {cfg.grub_default}")


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(BootloaderStep(), argv, prog="grub-setup")
