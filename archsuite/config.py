from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, TypeVar

from .errors import ConfigError

PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_BASE_PACKAGES: Tuple[str, ...] = (
    "base",
    "linux",
    "linux-firmware",
    "base-devel",
    "networkmanager",
    "grub",
    "efibootmgr",
    "os-prober",
    "nano",
    "vim",
    "git",
    "sudo",
    "man-db",
    "man-pages",
    "texinfo",
)


@dataclass(frozen=True)
class BuilderConfig:
    """Fixed layout and tunables for the ISO builder."""

    base_dir: Path = Path(".")
    build_dir_name: str = "archiso-build"
    iso_name: str = "custom-arch.iso"
    default_profile: str = "releng"
    scripts_dir_name: str = "install-scripts"
    entry_script: str = "install-arch.sh"
    tmpfs_base: Path = Path("/tmp/archiso-build")
    tmpfs_size: str = "6G"
    cache_size: str = "3G"
    compression: str = "lz4"
    min_ram_gb: int = 12
    required_packages: Tuple[str, ...] = ("archiso", "squashfs-tools")
    profile_repo: str = "https://gitlab.archlinux.org/archlinux/archiso.git"
    profile_fetch_timeout: float = 30.0
    system_profiles_dir: Path = Path("/usr/share/archiso/configs")
    artifact_pattern: str = "archlinux-*.iso"
    parallel_downloads: int = 10
    use_sudo: bool = True

    @property
    def build_dir(self) -> Path:
        return self.base_dir / self.build_dir_name

    @property
    def profiles_dir(self) -> Path:
        return self.build_dir / "profiles"

    @property
    def output_dir(self) -> Path:
        return self.build_dir / "output"

    @property
    def cache_dir(self) -> Path:
        return self.build_dir / "cache"

    @property
    def logs_dir(self) -> Path:
        return self.build_dir / "logs"

    @property
    def iso_file(self) -> Path:
        return self.output_dir / self.iso_name

    @property
    def checksum_file(self) -> Path:
        return self.output_dir / f"{self.iso_name}.sha256"

    @property
    def profile_dir(self) -> Path:
        return self.profiles_dir / self.default_profile

    @property
    def airootfs_root(self) -> Path:
        # /root of the live image
        return self.profile_dir / "airootfs" / "root"

    @property
    def installed_scripts_dir(self) -> Path:
        return self.airootfs_root / self.scripts_dir_name

    @property
    def autorun_script(self) -> Path:
        return self.airootfs_root / ".automated_script.sh"

    @property
    def scripts_dir(self) -> Path:
        return self.base_dir / self.scripts_dir_name

    @property
    def state_path(self) -> Path:
        return self.logs_dir / "build_state.json"

    @property
    def log_path(self) -> Path:
        return self.logs_dir / "archiso-builder.log"


@dataclass(frozen=True)
class InstallConfig:
    """Settings shared by the orchestrator and the seven install steps."""

    boot_setup_dir: Path = PACKAGE_DIR / "boot_setup"
    release_file: Path = Path("/etc/arch-release")
    target_root: Path = Path("/mnt")
    reboot_delay: int = 5
    state_path: Path = Path("/tmp/archsuite/install-state.json")
    log_path: Path = Path("/var/log/archsuite-install.log")
    network_attempts: int = 3
    network_backoff: float = 2.0
    dhcp_timeout: int = 20
    connect_settle: float = 5.0
    ping_host: str = "archlinux.org"
    base_packages: Tuple[str, ...] = DEFAULT_BASE_PACKAGES
    user_groups: Tuple[str, ...] = ("wheel", "audio", "video", "optical", "storage")
    grub_timeout: int = 5
    grub_default: int = 0
    bootloader_id: str = "GRUB"
    efi_size: str = "512M"
    # "auto" sizes swap to installed RAM, "0" disables the swap partition.
    swap_size: str = "auto"
    zoneinfo_dir: Path = Path("/usr/share/zoneinfo")
    dry_run: bool = False

    @property
    def target(self) -> str:
        return str(self.target_root)


_C = TypeVar("_C", BuilderConfig, InstallConfig)


def _read_yaml_mapping(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    if path.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError(f"Config file must be YAML: {path}")

    import yaml

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")
    return raw


def apply_overrides(defaults: _C, raw: Dict[str, Any], *, relative_to: Optional[Path] = None) -> _C:
    """Return a copy of ``defaults`` with ``raw`` applied, coercing to field types."""

    known = {f.name for f in fields(defaults)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in raw.items():
        current = getattr(defaults, key)
        if isinstance(current, Path):
            p = Path(str(value)).expanduser()
            if relative_to is not None and not p.is_absolute():
                p = relative_to / p
            value = p
        elif isinstance(current, tuple):
            if isinstance(value, str):
                value = [v for v in value.replace(",", " ").split() if v]
            value = tuple(str(v) for v in value)
        elif isinstance(current, bool):
            if isinstance(value, str):
                value = value.strip().lower() in {"1", "true", "yes", "on"}
            else:
                value = bool(value)
        elif isinstance(current, (int, float)) and not isinstance(value, type(current)):
            try:
                value = type(current)(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r}") from e
        values[key] = value
    return replace(defaults, **values)


def _load(path: Optional[str], base: _C) -> _C:
    if not path:
        return base
    p = Path(path)
    raw = _read_yaml_mapping(p)
    return apply_overrides(base, raw, relative_to=p.resolve().parent)


def load_builder_config(path: Optional[str] = None, *, base_dir: str = ".") -> BuilderConfig:
    return _load(path, BuilderConfig(base_dir=Path(base_dir)))


def load_install_config(path: Optional[str] = None) -> InstallConfig:
    return _load(path, InstallConfig())
