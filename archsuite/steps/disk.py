from __future__ import annotations

import logging
from typing import Optional

from ..errors import UserAborted, ValidationError
from ..lib.host import is_block_device
from ..lib.prompt import ask_until
from ..lib.storage import PartitionPlan, list_disks, normalize_disk, partition_and_format, resolve_swap_size
from ..lib.validate import clean
from . import StepContext, step_main

logger = logging.getLogger(__name__)

CONFIRM_WORD = "yes"


class DiskStep:
    """Wipe the chosen disk, lay out EFI/swap/root and mount it at the target."""

    step_id = "disk"

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.cfg
        p = ctx.prompter
        logger.info("Starting Arch Linux Disk Setup...")

        p.show("Listing available drives...")
        p.show(list_disks())
        p.show()
        answer = ask_until(
            p,
            "Please enter the name of the drive to install Arch Linux on (e.g., sda, nvme0n1): ",
            clean,
            invalid="Please enter a drive name.",
        )
        disk = normalize_disk(answer)
        if not ctx.dry_run and not is_block_device(disk):
            raise ValidationError(f"Drive {disk} does not exist. Please run the step again.")

        p.show(f"You have selected {disk}.")
        confirmation = p.ask("WARNING: ALL data on this drive will be destroyed. Are you absolutely sure? (yes/no): ")
        if confirmation.strip() != CONFIRM_WORD:
            p.show("Aborting installation.")
            raise UserAborted(f"Disk setup cancelled, {disk} left untouched")

        plan = PartitionPlan(disk=disk, efi_size=cfg.efi_size, swap_size=resolve_swap_size(cfg.swap_size))
        result = partition_and_format(plan=plan, target_root=cfg.target, dry_run=ctx.dry_run)
        logger.info(
            "Disk setup complete: efi=%s root=%s swap=%s",
            result.efi_part,
            result.root_part,
            result.swap_part or "none",
        )
        p.show("Disk setup is complete. You can now proceed with the base system install.")


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(DiskStep(), argv, prog="disk-setup")
