from __future__ import annotations

import logging
from typing import Optional

from ..errors import EnvironmentCheckError
from ..lib.command import run_cmd
from ..lib.mounts import is_mountpoint
from ..lib.pkg import pacstrap
from . import StepContext, step_main, write_target_file

logger = logging.getLogger(__name__)


class BaseStep:
    """pacstrap the base system and generate its fstab."""

    step_id = "base"

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.cfg
        target = ctx.target
        if not ctx.dry_run and not is_mountpoint(target):
            raise EnvironmentCheckError(f"{target} is not mounted. Please run disk-setup first.")

        logger.info("Installing base system with pacstrap...")
        ctx.prompter.show("This process can take a significant amount of time depending on")
        ctx.prompter.show("your internet connection and the mirror speed.")
        pacstrap(target, cfg.base_packages, dry_run=ctx.dry_run)
        logger.info("Base system installation complete.")

        self.write_fstab(ctx)

    def write_fstab(self, ctx: StepContext) -> None:
        # Regenerated in full so a re-run does not duplicate entries.
        r = run_cmd(["genfstab", "-U", ctx.target], dry_run=ctx.dry_run)
        write_target_file(ctx, "etc/fstab", r.stdout)
        logger.info("Generated fstab")


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(BaseStep(), argv, prog="base-setup")
