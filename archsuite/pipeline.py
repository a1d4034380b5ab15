"""Fixed seven-step installation pipeline.

State machine::

    NOT_STARTED -> ENVIRONMENT_CHECKED -> CONFIRMED -> RUNNING(i) -> COMPLETED
                                                              \\-> ABORTED(i)

Each step is an external executable; the orchestrator only sees its exit
status. A step that exits non-zero stops the pipeline at that index.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .config import InstallConfig
from .errors import EXIT_CANCELLED, EnvironmentCheckError, StepFailed, UserAborted, ValidationError
from .lib.command import run_cmd, run_interactive
from .lib.host import is_executable, is_root, make_executable
from .lib.mounts import umount
from .lib.prompt import ConsolePrompter, Prompter, ask_yes_no, pause
from .state_store import (
    ensure_defaults,
    load_state,
    mark_step_completed,
    record_failure,
    reset_execution,
    save_state,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallStep:
    name: str
    ordinal: int
    description: str
    script: str
    summary: str

    def path(self, boot_setup_dir: Path) -> Path:
        return boot_setup_dir / self.script


STEPS: Sequence[InstallStep] = (
    InstallStep("network setup", 1, "Setting up network connection", "network-setup",
                "Network Setup - Configure internet connection"),
    InstallStep("disk setup", 2, "Partitioning and formatting disk", "disk-setup",
                "Disk Setup - Partition and format storage"),
    InstallStep("base setup", 3, "Installing base system packages", "base-setup",
                "Base System - Install core Arch Linux packages"),
    InstallStep("locale setup", 4, "Configuring locale and language", "locale-setup",
                "Locale Setup - Configure language and keyboard"),
    InstallStep("clock setup", 5, "Setting up timezone and clock", "clock-setup",
                "Clock Setup - Configure timezone and time"),
    InstallStep("bootloader setup", 6, "Installing and configuring GRUB bootloader", "grub-setup",
                "GRUB Setup - Install and configure bootloader"),
    InstallStep("user setup", 7, "Creating user account and configuring system", "user-setup",
                "User Setup - Create user account and configure sudo"),
)


class PipelineState(enum.Enum):
    NOT_STARTED = "not_started"
    ENVIRONMENT_CHECKED = "environment_checked"
    CONFIRMED = "confirmed"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepRunner(Protocol):
    def __call__(self, executable: Path, args: Sequence[str]) -> int:
        ...


def run_step_process(executable: Path, args: Sequence[str]) -> int:
    # Steps prompt the user themselves, so keep them on the terminal.
    return run_interactive([str(executable), *args], check=False)


def find_step(name: str, steps: Sequence[InstallStep] = STEPS) -> int:
    """Index of the step matching a name, script name or ordinal."""

    key = name.strip().lower()
    for i, step in enumerate(steps):
        if key in {step.name, step.script, str(step.ordinal), step.name.replace(" ", "-")}:
            return i
    raise ValidationError(f"Unknown step: {name} (choose from: {', '.join(s.script for s in steps)})")


class InstallOrchestrator:
    def __init__(
        self,
        cfg: InstallConfig,
        *,
        steps: Sequence[InstallStep] = STEPS,
        runner: StepRunner = run_step_process,
        prompter: Optional[Prompter] = None,
        step_args: Sequence[str] = (),
        root_check: Callable[[], bool] = is_root,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.steps = list(steps)
        self.runner = runner
        self.prompter = prompter or ConsolePrompter()
        self.step_args = list(step_args)
        self.root_check = root_check
        self.sleep = sleep

        self.state = PipelineState.NOT_STARTED
        self.step_index: Optional[int] = None
        self.record: Dict[str, Any] = ensure_defaults(load_state(str(cfg.state_path)))
        self.record["config"] = {
            "boot_setup_dir": str(cfg.boot_setup_dir),
            "target_root": cfg.target,
            "dry_run": cfg.dry_run,
        }

    # -- bookkeeping ---------------------------------------------------------

    def _transition(self, state: PipelineState, step_index: Optional[int] = None) -> None:
        self.state = state
        if step_index is not None:
            self.step_index = step_index
        exe = self.record.setdefault("execution", {})
        exe["status"] = state.value
        if state is PipelineState.RUNNING and self.step_index is not None:
            exe["current_step"] = self.steps[self.step_index].name
        elif state is PipelineState.COMPLETED:
            exe["current_step"] = None
        self._persist()

    def _persist(self) -> None:
        try:
            save_state(str(self.cfg.state_path), self.record)
        except OSError as e:
            logger.warning("Could not write run record %s: %s", self.cfg.state_path, e)

    # -- operations ----------------------------------------------------------

    def check_environment(self) -> None:
        p = self.prompter
        p.show("Checking installation environment...")

        if not self.cfg.release_file.exists():
            raise EnvironmentCheckError("This program must be run from an Arch Linux installation environment.")
        if not self.root_check():
            raise EnvironmentCheckError("This program must be run as root. Use: sudo arch-install")

        for step in self.steps:
            path = step.path(self.cfg.boot_setup_dir)
            if not path.is_file():
                raise EnvironmentCheckError(f"Required step not found: {path}")
            if not is_executable(path):
                logger.warning("Making %s executable...", path.name)
                make_executable(path)

        logger.info("Environment check passed.")
        self._transition(PipelineState.ENVIRONMENT_CHECKED)

    def confirm(self) -> None:
        p = self.prompter
        p.show("Installation Summary:")
        p.show("----------------------------------------")
        p.show("The following steps will be performed:")
        p.show()
        for step in self.steps:
            p.show(f"  {step.ordinal}. {step.summary}")
        p.show()
        p.show("WARNING: This will modify your system and potentially destroy data!")
        p.show()

        if not ask_yes_no(p, "Do you want to proceed with the installation?"):
            p.show("Installation cancelled.")
            raise UserAborted("Installation cancelled")
        self._transition(PipelineState.CONFIRMED)

    def run_step(self, index: int) -> None:
        step = self.steps[index]
        path = step.path(self.cfg.boot_setup_dir)
        p = self.prompter

        self._transition(PipelineState.RUNNING, index)
        p.show(f"[STEP {step.ordinal}] {step.description}")
        p.show()
        p.show(f"Running: {step.script}")
        p.show("----------------------------------------")
        logger.info("Running step %s (%s)", step.ordinal, step.name)

        rc = self.runner(path, self.step_args)
        if rc != 0:
            self._transition(PipelineState.ABORTED, index)
            if rc == EXIT_CANCELLED:
                record_failure(self.record, step.name, "cancelled by user")
                self._persist()
                raise UserAborted(f"Installation stopped: {step.name} was cancelled")

            record_failure(self.record, step.name, f"exit code {rc}")
            self._persist()
            logger.error("Step %s failed. Installation cannot continue.", step.name)
            p.show()
            p.show("You can try to:")
            p.show(f"  1. Fix the issue and run the step manually: {path}")
            p.show(f"  2. Resume the installation: arch-install --start-at {step.script}")
            p.show("  3. Restart the installation: arch-install")
            raise StepFailed(step, rc)

        mark_step_completed(self.record, step.name)
        self._persist()
        logger.info("%s completed successfully.", step.name)
        p.show()
        pause(p)

    def run(self, start_at: Optional[str] = None) -> None:
        first = find_step(start_at, self.steps) if start_at else 0
        reset_execution(self.record, keep_completed=bool(start_at))

        self.check_environment()
        self.confirm()
        for index in range(first, len(self.steps)):
            self.run_step(index)

        self._transition(PipelineState.COMPLETED)
        self.finalize()

    def finalize(self) -> None:
        p = self.prompter
        target = self.cfg.target
        logger.info("Arch Linux installation completed successfully!")
        for line in _final_steps(target):
            p.show(line)

        if not ask_yes_no(p, "Do you want to reboot now?"):
            p.show("Remember to unmount filesystems and reboot manually.")
            return

        p.show("Unmounting filesystems...")
        umount(target, recursive=True, dry_run=self.cfg.dry_run)
        for remaining in range(self.cfg.reboot_delay, 0, -1):
            p.show(f"Rebooting in {remaining} seconds... (Ctrl+C to cancel)")
            self.sleep(1)
        run_cmd(["reboot"], dry_run=self.cfg.dry_run)


def _final_steps(target: str) -> List[str]:
    return [
        "=========================================================",
        "                    FINAL STEPS",
        "=========================================================",
        "Your Arch Linux system is now installed and configured.",
        "",
        "To complete the installation:",
        "  1. Unmount all filesystems:",
        f"     umount -R {target}",
        "  2. Reboot the system:",
        "     reboot",
        "  3. Remove the installation media",
        "  4. Boot into your new Arch Linux system",
        "",
        "After first boot:",
        "  - Update the system: sudo pacman -Syu",
        "  - Install additional software as needed",
        "=========================================================",
    ]
