"""Zero-argument ISO builder: set up, build, or offer a rebuild.

``ISOBuilder`` holds the decisions. Every external effect goes through an
injected collaborator (package manager, image builder, profile sources,
scratch space, host probe, prompter) so the flow can be exercised against
fakes.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .artifact import (
    artifact_age_minutes,
    artifact_size_text,
    discover_artifact,
    format_age,
    format_duration,
    promote_artifact,
    remove_stale_artifacts,
    write_checksum,
)
from .build_state import load_build_state, record_build, save_build_state
from .config import BuilderConfig
from .errors import BuildError, CommandError, EnvironmentCheckError
from .lib.command import privileged, run_cmd, run_interactive
from .lib.host import HostProbe
from .lib.mounts import ScratchSpace, TmpfsScratch
from .lib.pkg import PackageManager, Pacman, missing_packages
from .lib.prompt import ConsolePrompter, Prompter, ask_until
from .profile import (
    ProfileSource,
    available_profiles,
    default_profile_sources,
    inject_user_scripts,
    list_user_scripts,
    optimize_profile,
)

logger = logging.getLogger(__name__)


class ImageBuilder(Protocol):
    def build(self, *, profile_dir: Path, work_dir: Path, output_dir: Path) -> Optional[Path]:
        """Assemble an image. Returns its path when known, else None."""
        ...


class Mkarchiso:
    def __init__(self, *, use_sudo: bool = True):
        self.use_sudo = use_sudo

    def build(self, *, profile_dir: Path, work_dir: Path, output_dir: Path) -> Optional[Path]:
        argv = ["mkarchiso", "-v", "-w", str(work_dir), "-o", str(output_dir), str(profile_dir)]
        run_interactive(privileged(argv, use_sudo=self.use_sudo))
        # mkarchiso does not print a machine-readable output path.
        return None


class RebuildChoice(enum.Enum):
    INCREMENTAL = "1"
    CLEAN = "2"
    KEEP = "3"


REBUILD_MENU = (
    "  1) Incremental rebuild (reuse cache, faster)",
    "  2) Clean rebuild (fresh build, slower)",
    "  3) Exit (use existing ISO)",
)


def parse_rebuild_choice(answer: str) -> Optional[RebuildChoice]:
    try:
        return RebuildChoice(answer.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class BuildReport:
    build_type: str
    started: str
    finished: str
    duration_s: float
    size: str
    sha256: str
    artifact: str
    checksum_file: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).isoformat()


class ISOBuilder:
    def __init__(
        self,
        cfg: BuilderConfig,
        *,
        packages: Optional[PackageManager] = None,
        image_builder: Optional[ImageBuilder] = None,
        profile_sources: Optional[Sequence[ProfileSource]] = None,
        scratch: Optional[ScratchSpace] = None,
        host: Optional[HostProbe] = None,
        prompter: Optional[Prompter] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.packages = packages or Pacman(use_sudo=cfg.use_sudo)
        self.image_builder = image_builder or Mkarchiso(use_sudo=cfg.use_sudo)
        self.profile_sources = list(profile_sources) if profile_sources is not None else default_profile_sources(cfg)
        self.scratch = scratch or TmpfsScratch(
            cfg.tmpfs_base,
            work_size=cfg.tmpfs_size,
            cache_size=cfg.cache_size,
            use_sudo=cfg.use_sudo,
        )
        self.host = host or HostProbe()
        self.prompter = prompter or ConsolePrompter()
        self.clock = clock

    # -- state queries ------------------------------------------------------

    def is_setup_complete(self) -> bool:
        cfg = self.cfg
        return all(d.is_dir() for d in (cfg.build_dir, cfg.profile_dir, cfg.cache_dir, cfg.output_dir))

    def iso_exists(self) -> bool:
        return self.cfg.iso_file.is_file()

    def get_artifact_age(self) -> int:
        return artifact_age_minutes(self.cfg.iso_file, now=self.clock())

    def get_artifact_size(self) -> str:
        return artifact_size_text(self.cfg.iso_file)

    # -- setup --------------------------------------------------------------

    def check_requirements(self) -> None:
        cfg = self.cfg
        logger.info("Checking system requirements...")
        ram_gb = self.host.memory_gb()
        if ram_gb < cfg.min_ram_gb:
            raise EnvironmentCheckError(f"Insufficient RAM: {ram_gb}GB (need at least {cfg.min_ram_gb}GB)")
        logger.info("RAM: %dGB", ram_gb)

        missing = missing_packages(self.packages, cfg.required_packages)
        if missing:
            logger.info("Installing missing packages: %s", " ".join(missing))
            try:
                self.packages.install(missing)
            except CommandError as e:
                raise EnvironmentCheckError(f"Failed to install packages: {' '.join(missing)}") from e
        logger.info("All required packages installed")

    def fetch_profiles(self) -> None:
        cfg = self.cfg
        cfg.profiles_dir.mkdir(parents=True, exist_ok=True)
        for source in self.profile_sources:
            logger.info("Fetching %s...", source.name)
            if source.fetch(cfg.profiles_dir):
                logger.info("Copied %s", source.name)

        if not cfg.profile_dir.is_dir():
            names = available_profiles(cfg.profiles_dir)
            raise BuildError(
                f"Profile '{cfg.default_profile}' not found. "
                f"Available profiles: {' '.join(names) or 'none'}"
            )
        logger.info("Profile ready: %s", cfg.default_profile)

    def update_gitignore(self) -> bool:
        """Ignore the build dir when the base dir is a git checkout."""

        base = self.cfg.base_dir
        if not (base / ".git").exists():
            return False
        entry = f"{self.cfg.build_dir_name}/"
        gitignore = base / ".gitignore"
        text = gitignore.read_text(encoding="utf-8") if gitignore.is_file() else ""
        if any(line.strip().rstrip("/") == self.cfg.build_dir_name for line in text.splitlines()):
            return False
        if text and not text.endswith("\n"):
            text += "\n"
        gitignore.write_text(text + entry + "\n", encoding="utf-8")
        logger.info("Added '%s' to .gitignore", entry)
        return True

    def provision(self) -> None:
        cfg = self.cfg
        logger.info("Setting up build environment")
        for d in (cfg.build_dir, cfg.profiles_dir, cfg.output_dir, cfg.cache_dir, cfg.logs_dir):
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise BuildError(f"Cannot create {d}: {e}") from e

        self.check_requirements()
        self.fetch_profiles()
        self.update_gitignore()
        logger.info("Setup completed")

    # -- build --------------------------------------------------------------

    def optimize_profile(self) -> None:
        optimize_profile(self.cfg, tmpfs_cache=self.scratch.cache_dir)

    def inject_user_scripts(self) -> bool:
        return inject_user_scripts(self.cfg)

    def _clear_cache_dir(self) -> None:
        cache = self.cfg.cache_dir
        if not cache.is_dir():
            return
        children = [str(c) for c in cache.iterdir()]
        if children:
            # mkarchiso runs as root, so cached packages are root-owned.
            run_cmd(privileged(["rm", "-rf", *children], use_sudo=self.cfg.use_sudo), check=False)

    def build(self, clean: bool = False) -> BuildReport:
        cfg = self.cfg
        build_type = "clean" if clean else "incremental"
        logger.info("Starting %s build", build_type)
        if not self.is_setup_complete():
            raise BuildError("Build environment is incomplete, run setup first")

        if clean:
            self._clear_cache_dir()

        try:
            self.scratch.setup()
            if clean:
                self.scratch.clear()
            logger.info("Optimizing profile and copying install scripts...")
            self.optimize_profile()
            self.inject_user_scripts()
            (cfg.cache_dir / "pkg").mkdir(parents=True, exist_ok=True)
            remove_stale_artifacts(cfg.output_dir, cfg.artifact_pattern, exclude=cfg.iso_file)

            logger.info("Profile: %s", cfg.default_profile)
            logger.info("Output: %s", cfg.iso_file)
            started = self.clock()
            try:
                reported = self.image_builder.build(
                    profile_dir=cfg.profile_dir,
                    work_dir=self.scratch.work_dir,
                    output_dir=cfg.output_dir,
                )
            except CommandError as e:
                raise BuildError(f"Build failed: {e}") from e
            finished = self.clock()
        finally:
            self.scratch.cleanup()

        built = discover_artifact(
            cfg.output_dir,
            cfg.artifact_pattern,
            reported=reported,
            exclude=cfg.iso_file,
        )
        if built is None:
            raise BuildError("ISO file not found after build")

        iso = promote_artifact(built, cfg.iso_file)
        checksum = write_checksum(iso)
        digest = checksum.read_text(encoding="utf-8").split()[0]

        report = BuildReport(
            build_type=build_type,
            started=_timestamp(started),
            finished=_timestamp(finished),
            duration_s=round(finished - started, 1),
            size=artifact_size_text(iso),
            sha256=digest,
            artifact=str(iso),
            checksum_file=str(checksum),
        )
        logger.info("Build completed successfully!")
        logger.info("Build type: %s", build_type)
        logger.info("Time: %s", format_duration(finished - started))
        logger.info("Size: %s", report.size)
        logger.info("File: %s", iso)
        logger.info("Checksum: %s", checksum)
        self._record(report)
        return report

    def _record(self, report: BuildReport) -> None:
        path = str(self.cfg.state_path)
        state = record_build(load_build_state(path), report.to_dict())
        save_build_state(path, state)

    # -- decisions ----------------------------------------------------------

    def prompt_rebuild(self) -> Optional[BuildReport]:
        """Offer incremental, clean or keep. Returns None when keeping the ISO."""

        cfg = self.cfg
        p = self.prompter
        p.show()
        p.show("Existing ISO found:")
        p.show(f"  File: {cfg.iso_file}")
        p.show(f"  Size: {self.get_artifact_size()}")
        p.show(f"  Built: {format_age(self.get_artifact_age())}")
        p.show()
        p.show("What would you like to do?")
        for line in REBUILD_MENU:
            p.show(line)
        p.show()

        choice = ask_until(
            p,
            "Choose [1-3]: ",
            parse_rebuild_choice,
            invalid="Invalid choice. Please select 1, 2, or 3.",
        )
        if choice is RebuildChoice.KEEP:
            logger.info("Using existing ISO: %s", cfg.iso_file)
            return None
        if choice is RebuildChoice.CLEAN:
            logger.info("Starting clean rebuild...")
            return self.build(clean=True)
        logger.info("Starting incremental rebuild...")
        return self.build(clean=False)

    def _log_user_scripts(self, names: List[str]) -> None:
        if names:
            logger.info("Install scripts found: %s", " ".join(names))
        else:
            logger.info(
                "No install scripts found (create ./%s/ folder to add custom scripts)",
                self.cfg.scripts_dir_name,
            )

    def run_auto(self) -> Optional[BuildReport]:
        if not self.is_setup_complete():
            logger.info("Build environment not found, setting up...")
            self.provision()
        else:
            logger.info("Build environment found")

        self._log_user_scripts(list_user_scripts(self.cfg))
        if self.iso_exists():
            logger.info("Existing ISO detected")
            return self.prompt_rebuild()

        logger.info("No existing ISO found, building new one...")
        return self.build(clean=False)

    def ensure_setup(self) -> None:
        if not self.is_setup_complete():
            self.provision()
