from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from .command import run_cmd

logger = logging.getLogger(__name__)


def backoff_delays(attempts: int, base_delay: float) -> List[float]:
    """Delays slept between ``attempts`` tries: base, 2*base, 4*base, ..."""

    return [base_delay * (2 ** i) for i in range(max(attempts - 1, 0))]


def retry_with_backoff(
    fn: Callable[[], bool],
    *,
    attempts: int = 3,
    base_delay: float = 2.0,
    what: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call ``fn`` until it returns True, at most ``attempts`` times."""

    delays = backoff_delays(attempts, base_delay)
    for attempt in range(1, max(attempts, 1) + 1):
        if fn():
            return True
        if attempt <= len(delays):
            delay = delays[attempt - 1]
            logger.warning("%s failed (attempt %d/%d), retrying in %.0fs", what, attempt, attempts, delay)
            sleep(delay)
    logger.error("%s failed after %d attempts", what, attempts)
    return False


def ping(host: str, *, count: int = 3, dry_run: bool = False) -> bool:
    return run_cmd(["ping", "-c", str(count), "-W", "5", host], check=False, dry_run=dry_run).ok


def is_online(host: str, *, dry_run: bool = False) -> bool:
    """Single quick probe, used to skip setup when a connection already works."""

    return ping(host, count=1, dry_run=dry_run)


def test_connection(
    host: str,
    *,
    attempts: int = 3,
    base_delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    dry_run: bool = False,
) -> bool:
    logger.info("Testing internet connectivity...")
    ok = retry_with_backoff(
        lambda: ping(host, dry_run=dry_run),
        attempts=attempts,
        base_delay=base_delay,
        what=f"ping {host}",
        sleep=sleep,
    )
    if ok:
        logger.info("Internet connection is active.")
    return ok


def parse_link_names(output: str) -> List[str]:
    """Parse `ip -o link show` into interface names, without loopback."""

    names: List[str] = []
    for line in output.splitlines():
        parts = line.split(": ", 2)
        if len(parts) < 2:
            continue
        name = parts[1].split("@", 1)[0].strip()
        if name and name != "lo":
            names.append(name)
    return names


def list_interfaces() -> List[str]:
    return parse_link_names(run_cmd(["ip", "-o", "link", "show"]).stdout)


def interface_kind(name: str) -> str:
    """wired|wireless|unknown, by the predictable-name prefix."""

    if name.startswith("e"):
        return "wired"
    if name.startswith("w"):
        return "wireless"
    return "unknown"


def dhcp(interface: str, *, timeout: int, dry_run: bool = False) -> bool:
    r = run_cmd(
        ["dhcpcd", "-t", str(timeout), interface],
        check=False,
        timeout=timeout + 5,
        dry_run=dry_run,
    )
    return r.ok


def wifi_prepare(interface: str, *, dry_run: bool = False) -> str:
    """Unblock the radio, scan, and return iwctl's network listing."""

    run_cmd(["rfkill", "unblock", "wifi"], check=False, dry_run=dry_run)
    run_cmd(["iwctl", "station", interface, "scan"], check=False, dry_run=dry_run)
    r = run_cmd(["iwctl", "--no-pager", "station", interface, "get-networks"], check=False, dry_run=dry_run)
    return r.stdout


def wifi_connect(interface: str, ssid: str, passphrase: Optional[str], *, dry_run: bool = False) -> bool:
    if passphrase:
        argv = ["iwctl", f"--passphrase={passphrase}", "station", interface, "connect", ssid]
        r = run_cmd(argv, check=False, redact=[1], timeout=60, dry_run=dry_run)
    else:
        r = run_cmd(["iwctl", "station", interface, "connect", ssid], check=False, timeout=60, dry_run=dry_run)
    return r.ok
