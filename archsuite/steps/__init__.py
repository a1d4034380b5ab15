"""The seven install steps.

Each step module exposes a class with ``step_id`` and ``run(ctx)`` and a
``main(argv)`` used by the launcher in ``archsuite/boot_setup``. ``main``
turns the outcome into the exit status the orchestrator gates on.
"""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..config import InstallConfig, load_install_config
from ..errors import EXIT_CANCELLED, ArchSuiteError, EnvironmentCheckError, UserAborted
from ..lib.chroot import chroot_cmd
from ..lib.mounts import is_mountpoint
from ..lib.prompt import ConsolePrompter, Prompter
from ..lib.signals import terminate_as_interrupt
from ..logging_utils import configure_logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepContext:
    cfg: InstallConfig
    prompter: Prompter = field(default_factory=ConsolePrompter)
    sleep: Callable[[float], None] = time.sleep

    @property
    def target(self) -> str:
        return self.cfg.target

    @property
    def dry_run(self) -> bool:
        return self.cfg.dry_run

    def target_path(self, rel: str) -> Path:
        return self.cfg.target_root / rel.lstrip("/")


class Step(Protocol):
    step_id: str

    def run(self, ctx: StepContext) -> None:
        ...


def require_installed_target(ctx: StepContext, *, efi: bool = False) -> None:
    """Fail unless the target is mounted and the base system is installed."""

    if ctx.dry_run:
        return
    if not is_mountpoint(ctx.target):
        raise EnvironmentCheckError(f"{ctx.target} is not mounted. Please run disk-setup and base-setup first.")
    efi_dir = ctx.target_path("boot/efi")
    if efi and not is_mountpoint(efi_dir):
        raise EnvironmentCheckError(f"EFI partition is not mounted at {efi_dir}.")
    if not ctx.target_path("etc/fstab").is_file():
        raise EnvironmentCheckError("Base system not installed. Please run base-setup first.")
    logger.info("Environment check passed.")


def write_target_file(ctx: StepContext, rel: str, text: str) -> Path:
    path = ctx.target_path(rel)
    if ctx.dry_run:
        logger.info("Would write %s", path)
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Wrote %s", path)
    return path


def set_password(ctx: StepContext, username: Optional[str] = None) -> None:
    """Run passwd in the target until it succeeds."""

    who = username or "root"
    argv = ["passwd", username] if username else ["passwd"]
    while True:
        ctx.prompter.show(f"Setting password for {who}...")
        if chroot_cmd(ctx.target, argv, check=False, interactive=True, dry_run=ctx.dry_run).ok:
            logger.info("Password set for %s", who)
            return
        ctx.prompter.show(f"Failed to set password for {who}. Please try again.")


def step_main(step: Step, argv: Optional[list[str]], *, prog: str, prompter: Optional[Prompter] = None) -> int:
    p = argparse.ArgumentParser(prog=prog)
    p.add_argument("--config", default=None, help="YAML file overriding install settings")
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")
    args = p.parse_args(argv)

    try:
        cfg = load_install_config(args.config)
    except ArchSuiteError as e:
        configure_logging(log_path=args.log or str(InstallConfig.log_path))
        logger.error("%s", e)
        return 1
    if args.log:
        cfg = replace(cfg, log_path=Path(args.log))
    if args.dry_run:
        cfg = replace(cfg, dry_run=True)
    configure_logging(log_path=str(cfg.log_path))

    ctx = StepContext(cfg=cfg, prompter=prompter or ConsolePrompter())
    try:
        with terminate_as_interrupt():
            step.run(ctx)
    except UserAborted as e:
        logger.info("%s", e)
        return EXIT_CANCELLED
    except ArchSuiteError as e:
        logger.error("%s failed: %s", prog, e)
        return 1
    except KeyboardInterrupt:
        logger.error("%s interrupted", prog)
        return 1
    logger.info("%s completed", prog)
    return 0
