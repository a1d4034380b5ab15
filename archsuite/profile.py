"""Archiso profile handling: fetching, build tuning, and user script injection.

Every edit in this module is idempotent. Re-running setup or a rebuild
against an already customized profile leaves the files byte-identical.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import List, Protocol, Sequence

from .config import BuilderConfig
from .errors import BuildError
from .lib.assets import copy_tree, mark_scripts_executable
from .lib.command import run_cmd
from .lib.host import make_executable

logger = logging.getLogger(__name__)

OPTIMIZATION_MARKER = "# Build optimizations"
OPTIMIZATION_END = "# End build optimizations"
AUTORUN_MARKER = "# Custom install scripts execution"
ZLOGIN_CALL = "/root/.automated_script.sh"

# Same contract as the automated script shipped by archiso's releng profile:
# run the script= kernel parameter, if any, once per boot.
ARCHISO_AUTOMATED_SCRIPT = """#!/usr/bin/env bash
script_cmdline() {
    local param
    for param in $(</proc/cmdline); do
        case "${param}" in
            script=*)
                echo "${param#*=}"
                return 0
                ;;
        esac
    done
}
automated_script() {
    local script rt
    script="$(script_cmdline)"
    if [[ -n "${script}" && ! -x /tmp/startup_script ]]; then
        if [[ "${script}" =~ ^((http|https|ftp|tftp)://) ]]; then
            printf '%s: waiting for network-online.target\\n' "$0"
            until systemctl --quiet is-active network-online.target; do
                sleep 1
            done
            printf '%s: downloading %s\\n' "$0" "${script}"
            curl "${script}" --location --retry-connrefused --retry 10 --fail -s -o /tmp/startup_script
            rt=$?
        else
            cp "${script}" /tmp/startup_script
            rt=$?
        fi
        if [[ ${rt} -eq 0 ]]; then
            chmod +x /tmp/startup_script
            printf '%s: executing automated script\\n' "$0"
            /tmp/startup_script
        fi
    fi
}

automated_script
"""


class ProfileSource(Protocol):
    name: str

    def fetch(self, dest: Path) -> bool:
        """Copy profile directories into ``dest``. False if nothing was fetched."""
        ...


class SystemProfileSource:
    """Profiles installed by the host's archiso package."""

    name = "system archiso profiles"

    def __init__(self, configs_dir: Path):
        self.configs_dir = configs_dir

    def fetch(self, dest: Path) -> bool:
        if not self.configs_dir.is_dir():
            logger.debug("No system profiles at %s", self.configs_dir)
            return False
        copy_tree(str(self.configs_dir), str(dest))
        return True


class GitProfileSource:
    """Latest profiles from the archiso repository, bounded by a timeout."""

    name = "latest archiso profiles"

    def __init__(self, repo: str, *, timeout: float):
        self.repo = repo
        self.timeout = timeout

    def fetch(self, dest: Path) -> bool:
        with tempfile.TemporaryDirectory(prefix="archiso-latest-") as tmp:
            checkout = Path(tmp) / "archiso"
            r = run_cmd(
                ["git", "clone", "--depth", "1", self.repo, str(checkout)],
                check=False,
                timeout=self.timeout,
            )
            configs = checkout / "configs"
            if not r.ok or not configs.is_dir():
                logger.debug("Using system profiles (latest download failed/timeout)")
                return False
            copy_tree(str(configs), str(dest))
        return True


def default_profile_sources(cfg: BuilderConfig) -> List[ProfileSource]:
    # Later sources overwrite earlier ones.
    return [
        SystemProfileSource(cfg.system_profiles_dir),
        GitProfileSource(cfg.profile_repo, timeout=cfg.profile_fetch_timeout),
    ]


def rewrite_pacman_conf(text: str, *, cache_dirs: Sequence[str], parallel_downloads: int) -> str:
    """Put our overrides in a marker-delimited block right after ``[options]``.

    A previous block is replaced, including the older form that ran from the
    start marker to the end of the file.
    """

    block = [OPTIMIZATION_MARKER]
    block += [f"CacheDir = {d}" for d in cache_dirs]
    block.append(f"ParallelDownloads = {parallel_downloads}")
    block.append(OPTIMIZATION_END)

    out: List[str] = []
    skipping = False
    for line in text.splitlines():
        stripped = line.strip()
        if stripped == OPTIMIZATION_MARKER:
            skipping = True
            continue
        if skipping:
            if stripped == OPTIMIZATION_END:
                skipping = False
            continue
        if stripped.startswith("ParallelDownloads"):
            continue
        out.append(line)

    for i, line in enumerate(out):
        if line.strip() == "[options]":
            out[i + 1:i + 1] = block
            break
    else:
        out += ["", "[options]", *block]
    return "\n".join(out) + "\n"


def compression_options(compression: str) -> str:
    opts = ["-comp", compression]
    if compression == "lz4":
        opts.append("-Xhc")
    opts += ["-b", "1M"]
    return "airootfs_image_tool_options=(" + " ".join(f'"{o}"' for o in opts) + ")"


def add_compression_options(text: str, compression: str) -> str:
    if "airootfs_image_tool_options" in text:
        return text
    if text and not text.endswith("\n"):
        text += "\n"
    return text + compression_options(compression) + "\n"


def optimize_profile(cfg: BuilderConfig, *, tmpfs_cache: Path) -> None:
    profile_dir = cfg.profile_dir
    logger.debug("Optimizing profile: %s", cfg.default_profile)
    if not profile_dir.is_dir():
        raise BuildError(f"Profile directory not found: {profile_dir}")

    pacman_conf = profile_dir / "pacman.conf"
    if pacman_conf.is_file():
        text = pacman_conf.read_text(encoding="utf-8")
        pacman_conf.write_text(
            rewrite_pacman_conf(
                text,
                cache_dirs=[str(cfg.cache_dir / "pkg"), str(tmpfs_cache)],
                parallel_downloads=cfg.parallel_downloads,
            ),
            encoding="utf-8",
        )
        logger.debug("pacman.conf updated with build optimizations")
    else:
        logger.warning("pacman.conf not found: %s", pacman_conf)

    profiledef = profile_dir / "profiledef.sh"
    if profiledef.is_file():
        text = profiledef.read_text(encoding="utf-8")
        updated = add_compression_options(text, cfg.compression)
        if updated != text:
            profiledef.write_text(updated, encoding="utf-8")
            logger.debug("Added fast compression options to profiledef.sh")
        else:
            logger.debug("Compression options already present in profiledef.sh")
    else:
        logger.warning("profiledef.sh not found: %s", profiledef)


def autorun_snippet(cfg: BuilderConfig) -> str:
    # Only tty1 runs the installer; other consoles autologin too.
    entry = f"/root/{cfg.scripts_dir_name}/{cfg.entry_script}"
    return (
        f"\n{AUTORUN_MARKER}\n"
        'if [[ $(tty) == "/dev/tty1" ]]; then\n'
        f"\tchmod +x {entry}\n"
        f"\t{entry}\n"
        "fi\n"
    )


def ensure_autorun(script: Path, snippet: str) -> bool:
    """Add ``snippet`` to the autorun script unless its marker is present.

    An existing script (the base profile's) keeps its content and gets the
    snippet appended; a missing one is synthesized. Returns True if written.
    """

    if script.is_file():
        text = script.read_text(encoding="utf-8")
        if AUTORUN_MARKER in text:
            logger.info("Custom commands already present in automated script")
            make_executable(script)
            return False
        logger.info("Found existing %s, appending custom commands", script.name)
        if text and not text.endswith("\n"):
            text += "\n"
        script.write_text(text + snippet, encoding="utf-8")
    else:
        logger.info("No existing %s found, creating complete script", script.name)
        script.write_text(ARCHISO_AUTOMATED_SCRIPT + snippet, encoding="utf-8")
    make_executable(script)
    return True


def ensure_zlogin(zlogin: Path) -> bool:
    text = zlogin.read_text(encoding="utf-8") if zlogin.is_file() else ""
    if ".automated_script.sh" in text:
        logger.debug("Automated script call already in .zlogin")
        return False
    if text and not text.endswith("\n"):
        text += "\n"
    zlogin.write_text(text + ZLOGIN_CALL + "\n", encoding="utf-8")
    return True


def list_user_scripts(cfg: BuilderConfig) -> List[str]:
    d = cfg.scripts_dir
    if not d.is_dir():
        return []
    return sorted(p.name for p in d.iterdir())


def inject_user_scripts(cfg: BuilderConfig) -> bool:
    """Copy the user's install scripts into the live image and hook tty1 autorun.

    Returns False when there is nothing to inject.
    """

    names = list_user_scripts(cfg)
    if not names:
        logger.debug("No %s/ folder found, skipping script copy", cfg.scripts_dir_name)
        return False

    logger.info("Install scripts found: %s", " ".join(names))
    root_dir = cfg.airootfs_root
    if not root_dir.is_dir():
        raise BuildError(f"Target directory doesn't exist: {root_dir} (profile structure may be incorrect)")

    target = cfg.installed_scripts_dir
    logger.info("Copying scripts to ISO...")
    copy_tree(str(cfg.scripts_dir), str(target))
    mark_scripts_executable(target)
    logger.debug("Target location in ISO: /root/%s/", cfg.scripts_dir_name)

    ensure_autorun(cfg.autorun_script, autorun_snippet(cfg))
    ensure_zlogin(root_dir / ".zlogin")
    verify_user_scripts(cfg)
    logger.info("Auto-execution setup completed")
    return True


def verify_user_scripts(cfg: BuilderConfig) -> None:
    target = cfg.installed_scripts_dir
    if not target.is_dir():
        raise BuildError(f"Install scripts folder missing in ISO: {target}")
    files = sorted(p.name for p in target.iterdir())
    logger.info("Install scripts folder exists with %d files: %s", len(files), " ".join(files))

    script = cfg.autorun_script
    if not script.is_file():
        raise BuildError(f"{script.name} missing")
    text = script.read_text(encoding="utf-8")
    if AUTORUN_MARKER not in text:
        for line in text.splitlines():
            logger.debug("  %s", line)
        raise BuildError("Custom commands missing from automated script")
    logger.info("Install scripts integration verified")


def available_profiles(profiles_dir: Path) -> List[str]:
    if not profiles_dir.is_dir():
        return []
    return sorted(p.name for p in profiles_dir.iterdir() if p.is_dir())

