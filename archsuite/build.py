from __future__ import annotations

import argparse
import logging
from typing import Optional

from .builder import ISOBuilder
from .config import BuilderConfig, load_builder_config
from .errors import ArchSuiteError, BuildError, UserAborted
from .lib.signals import terminate_as_interrupt
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)

PROG = "archiso-builder"
COMMANDS = ("setup", "build", "clean", "rebuild", "help")

HELP = f"""Intelligent Arch Linux ISO Builder

USAGE:
  {PROG}                    # Intelligent mode (recommended)
  {PROG} setup              # Setup only
  {PROG} build              # Build (setup if needed)
  {PROG} clean              # Clean build
  {PROG} rebuild            # Rebuild existing ISO

INTELLIGENT MODE:
  Run '{PROG}' without a command and it will:
  - Auto-setup if needed
  - Build ISO if none exists
  - Prompt for rebuild if ISO exists

INSTALL SCRIPTS:
  - Create ./install-scripts/ folder with your scripts
  - Scripts will auto-execute on ISO boot (tty1)
  - Main script should be: install-arch.sh

OUTPUT:
  - Creates: ./archiso-build/ (added to .gitignore in git checkouts)
  - ISO: ./archiso-build/output/custom-arch.iso
  - Profile: releng (full Arch installation)

Set LOG_LEVEL=debug for verbose output.
"""


def run_command(builder: ISOBuilder, command: Optional[str]) -> None:
    if command is None:
        builder.run_auto()
    elif command == "setup":
        builder.provision()
    elif command == "build":
        builder.ensure_setup()
        builder.build(clean=False)
    elif command == "clean":
        builder.ensure_setup()
        builder.build(clean=True)
    elif command == "rebuild":
        if not builder.is_setup_complete():
            raise BuildError(f"Run setup first or just run '{PROG}'")
        if builder.iso_exists():
            builder.prompt_rebuild()
        else:
            builder.build(clean=False)
    else:
        raise ValueError(f"Unhandled command: {command}")


def main(argv: Optional[list[str]] = None, *, builder: Optional[ISOBuilder] = None) -> int:
    p = argparse.ArgumentParser(prog=PROG, add_help=False)
    p.add_argument("--config", default=None, help="YAML file overriding builder settings")
    p.add_argument("--base-dir", default=".", help="Directory holding archiso-build/ and install-scripts/")
    p.add_argument("--log", default=None, help="Path to builder log")
    p.add_argument("-h", "--help", action="store_const", const="help", dest="help_flag")
    p.add_argument("command", nargs="?", default=None)

    args = p.parse_args(argv)
    command = args.help_flag or args.command

    if command == "help":
        print(HELP)
        return 0

    if builder is not None:
        cfg: BuilderConfig = builder.cfg
    else:
        try:
            cfg = load_builder_config(args.config, base_dir=args.base_dir)
        except ArchSuiteError as e:
            configure_logging(log_path=args.log or f"{PROG}.log")
            logger.error("%s", e)
            return 1

    configure_logging(log_path=args.log or str(cfg.log_path))

    if command is not None and command not in COMMANDS:
        logger.error("Unknown command: %s", command)
        print(f"Run '{PROG} help' for usage information")
        return 1

    if builder is None:
        builder = ISOBuilder(cfg)

    try:
        with terminate_as_interrupt():
            run_command(builder, command)
    except UserAborted as e:
        logger.info("%s", e)
        return 0
    except ArchSuiteError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted, temporary mounts cleaned up")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
