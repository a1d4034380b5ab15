from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..lib.chroot import chroot_cmd
from ..lib.command import run_cmd
from ..lib.prompt import ask_yes_no
from . import StepContext, require_installed_target, step_main

logger = logging.getLogger(__name__)

EXCLUDED_REGIONS = {"posix", "right"}
PREVIEW = 20


def list_regions(zoneinfo: Path) -> List[str]:
    if not zoneinfo.is_dir():
        return []
    return sorted(p.name for p in zoneinfo.iterdir() if p.is_dir() and p.name not in EXCLUDED_REGIONS)


def list_zones(zoneinfo: Path, region: str) -> List[str]:
    d = zoneinfo / region
    if not d.is_dir():
        return []
    return sorted(str(p.relative_to(d)) for p in d.rglob("*") if p.is_file())


def resolve_timezone(zoneinfo: Path, region: str, city: str) -> Optional[str]:
    """``Region/City`` if it names a zone file inside ``zoneinfo``, else None."""

    if not region or not city or region in EXCLUDED_REGIONS:
        return None
    root = zoneinfo.resolve()
    candidate = (zoneinfo / region / city).resolve()
    if root not in candidate.parents or not candidate.is_file():
        return None
    return f"{region}/{city}"


class ClockStep:
    """Timezone of the target, hardware clock and NTP."""

    step_id = "clock"

    def run(self, ctx: StepContext) -> None:
        p = ctx.prompter
        require_installed_target(ctx)

        status = run_cmd(["timedatectl"], check=False)
        p.show("================================================")
        p.show(status.stdout.rstrip())
        p.show("================================================")

        if not ask_yes_no(p, "Do you want to change timezone?"):
            logger.info("Keeping current timezone")
            return

        tz = self.choose_timezone(ctx)
        zone_file = f"/usr/share/zoneinfo/{tz}"
        chroot_cmd(ctx.target, ["ln", "-sf", zone_file, "/etc/localtime"], dry_run=ctx.dry_run)
        chroot_cmd(ctx.target, ["hwclock", "--systohc"], dry_run=ctx.dry_run)
        run_cmd(["timedatectl", "set-ntp", "true"], check=False, dry_run=ctx.dry_run)
        logger.info("Timezone set to %s", tz)

    def choose_timezone(self, ctx: StepContext) -> str:
        p = ctx.prompter
        zoneinfo = ctx.cfg.zoneinfo_dir
        regions = list_regions(zoneinfo)

        p.show("Available timezone regions:")
        p.show(" ".join(regions[:PREVIEW]) + (" ... (and more)" if len(regions) > PREVIEW else ""))
        while True:
            region = p.ask("Enter your timezone region (e.g., America, Europe, Asia) or 'list' to see all: ").strip()
            if region == "list":
                p.show(" ".join(regions))
                continue
            if region in regions:
                break
            p.show(f"Region '{region}' not found. Please try again.")

        zones = list_zones(zoneinfo, region)
        p.show(f"Available cities/zones in {region}:")
        p.show(" ".join(zones[:PREVIEW]) + (" ... (and more)" if len(zones) > PREVIEW else ""))
        while True:
            city = p.ask("Enter your city/zone (e.g., New_York, London, Tokyo): ").strip()
            tz = resolve_timezone(zoneinfo, region, city)
            if tz:
                p.show(f"Selected timezone: {tz}")
                return tz
            p.show(f"City '{city}' not found in region '{region}'. Please try again.")
            matches = [z for z in zones if city and city.lower() in z.lower()]
            p.show("Available options: " + (" ".join(matches) if matches else "No matches found."))


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(ClockStep(), argv, prog="clock-setup")
