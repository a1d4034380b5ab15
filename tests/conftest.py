"""
Shared fixtures for archsuite tests.

Nothing here touches the real system: commands, mounts, package managers and
the image builder are replaced by fakes, and all files live under tmp_path.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from archsuite.builder import ISOBuilder
from archsuite.config import BuilderConfig, InstallConfig


# ==============================================================================
# Prompting
# ==============================================================================


class ScriptedPrompter:
    """Answers prompts from a fixed list and records everything shown."""

    def __init__(self, answers: Sequence[str] = ()):
        self.answers = list(answers)
        self.questions: List[str] = []
        self.shown: List[str] = []

    def ask(self, question: str) -> str:
        self.questions.append(question)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {question!r}")
        return self.answers.pop(0)

    def secret(self, question: str) -> str:
        return self.ask(question)

    def show(self, text: str = "") -> None:
        self.shown.append(text)

    @property
    def output(self) -> str:
        return "\n".join(self.shown)


@pytest.fixture
def prompter():
    return ScriptedPrompter()


# ==============================================================================
# Builder collaborators
# ==============================================================================


class FakePackages:
    def __init__(self, installed: Sequence[str] = ("archiso", "squashfs-tools")):
        self.installed = set(installed)
        self.install_calls: List[List[str]] = []

    def is_installed(self, package: str) -> bool:
        return package in self.installed

    def install(self, packages: Sequence[str]) -> None:
        self.install_calls.append(list(packages))
        self.installed.update(packages)


class FakeProfileSource:
    """Writes a minimal releng profile the way archiso ships it."""

    name = "fake profiles"

    def __init__(self, profile: str = "releng", ok: bool = True):
        self.profile = profile
        self.ok = ok
        self.calls = 0

    def fetch(self, dest: Path) -> bool:
        self.calls += 1
        if not self.ok:
            return False
        root = dest / self.profile
        (root / "airootfs" / "root").mkdir(parents=True, exist_ok=True)
        (root / "pacman.conf").write_text(
            "[options]\nHoldPkg = pacman glibc\nParallelDownloads = 5\n\n[core]\nInclude = /etc/pacman.d/mirrorlist\n",
            encoding="utf-8",
        )
        (root / "profiledef.sh").write_text('iso_name="archlinux"\n', encoding="utf-8")
        return True


class FakeScratch:
    def __init__(self, base: Path):
        self.work_dir = base / "work"
        self.cache_dir = base / "cache"
        self.events: List[str] = []

    def setup(self) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.events.append("setup")

    def clear(self) -> None:
        self.events.append("clear")

    def cleanup(self) -> None:
        self.events.append("cleanup")


class FakeImageBuilder:
    """Drops a dated image into the output dir like mkarchiso does."""

    def __init__(self, name: str = "archlinux-2025.01.01-x86_64.iso", fail: bool = False):
        self.name = name
        self.fail = fail
        self.calls: List[Dict[str, Path]] = []

    def build(self, *, profile_dir: Path, work_dir: Path, output_dir: Path) -> Optional[Path]:
        from archsuite.errors import CommandError

        self.calls.append({"profile_dir": profile_dir, "work_dir": work_dir, "output_dir": output_dir})
        if self.fail:
            raise CommandError(["mkarchiso"], 1, "boom")
        (output_dir / self.name).write_bytes(b"iso image bytes")
        return None


class FakeHost:
    def __init__(self, memory_gb: int = 16):
        self._memory_gb = memory_gb

    def memory_gb(self) -> int:
        return self._memory_gb


@pytest.fixture
def builder_cfg(tmp_path) -> BuilderConfig:
    return BuilderConfig(base_dir=tmp_path / "project", tmpfs_base=tmp_path / "tmpfs", use_sudo=False)


@pytest.fixture
def make_builder(builder_cfg, tmp_path):
    """Factory for an ISOBuilder wired to fakes; keyword args replace any fake."""

    def _make(**overrides) -> ISOBuilder:
        builder_cfg.base_dir.mkdir(parents=True, exist_ok=True)
        kwargs = dict(
            packages=FakePackages(),
            image_builder=FakeImageBuilder(),
            profile_sources=[FakeProfileSource()],
            scratch=FakeScratch(tmp_path / "tmpfs"),
            host=FakeHost(),
            prompter=ScriptedPrompter(),
        )
        kwargs.update(overrides)
        return ISOBuilder(builder_cfg, **kwargs)

    return _make


# ==============================================================================
# Installer
# ==============================================================================


STEP_SCRIPTS = (
    "network-setup",
    "disk-setup",
    "base-setup",
    "locale-setup",
    "clock-setup",
    "grub-setup",
    "user-setup",
)


@pytest.fixture
def install_cfg(tmp_path) -> InstallConfig:
    boot_setup = tmp_path / "boot_setup"
    boot_setup.mkdir()
    for name in STEP_SCRIPTS:
        script = boot_setup / name
        script.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
        os.chmod(script, 0o755)
    release = tmp_path / "arch-release"
    release.write_text("", encoding="utf-8")
    return InstallConfig(
        boot_setup_dir=boot_setup,
        release_file=release,
        target_root=tmp_path / "mnt",
        state_path=tmp_path / "state" / "install-state.json",
        log_path=tmp_path / "install.log",
        reboot_delay=0,
    )


# ==============================================================================
# Logging isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def _reset_root_logging():
    """Undo configure_logging() so each CLI test starts unconfigured."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    for attr in ("_archsuite_configured", "_archsuite_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
