from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .config import InstallConfig, load_install_config
from .errors import ArchSuiteError, UserAborted
from .lib.signals import terminate_as_interrupt
from .logging_utils import configure_logging
from .pipeline import InstallOrchestrator, StepRunner, run_step_process

logger = logging.getLogger(__name__)


def step_arguments(args: argparse.Namespace) -> List[str]:
    """Options forwarded to every step executable."""

    out: List[str] = []
    if args.config:
        out += ["--config", str(Path(args.config).resolve())]
    if args.log:
        out += ["--log", args.log]
    if args.dry_run:
        out.append("--dry-run")
    return out


def run(
    cfg: InstallConfig,
    *,
    start_at: Optional[str] = None,
    step_args: Optional[List[str]] = None,
    runner: StepRunner = run_step_process,
    orchestrator: Optional[InstallOrchestrator] = None,
) -> int:
    """Run the pipeline and map the outcome to an exit code."""

    if orchestrator is None:
        orchestrator = InstallOrchestrator(cfg, runner=runner, step_args=step_args or [])
    try:
        with terminate_as_interrupt():
            orchestrator.run(start_at=start_at)
    except UserAborted as e:
        logger.info("%s", e)
        return 0
    except ArchSuiteError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("Installation interrupted.")
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="arch-install", description="Arch Linux Installation Suite")
    p.add_argument("--config", default=None, help="YAML file overriding install settings")
    p.add_argument("--state", default=None, help="Path to the run record (json|yaml)")
    p.add_argument("--log", default=None, help="Path to installer log")
    p.add_argument("--start-at", default=None, help="Resume at a step (e.g. base-setup)")
    p.add_argument("--dry-run", action="store_true", help="Log commands without running them")

    args = p.parse_args(argv)

    try:
        cfg = load_install_config(args.config)
    except ArchSuiteError as e:
        configure_logging(log_path=args.log or str(InstallConfig.log_path))
        logger.error("%s", e)
        return 1

    overrides = {}
    if args.state:
        overrides["state_path"] = Path(args.state)
    if args.log:
        overrides["log_path"] = Path(args.log)
    if args.dry_run:
        overrides["dry_run"] = True
    cfg = replace(cfg, **overrides)

    actual_log = configure_logging(log_path=str(cfg.log_path))
    logger.debug("Install log: %s", actual_log)

    return run(cfg, start_at=args.start_at, step_args=step_arguments(args))


if __name__ == "__main__":
    raise SystemExit(main())
