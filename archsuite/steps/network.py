from __future__ import annotations

import logging
from typing import Optional

from ..errors import NetworkError
from ..lib.net import (
    dhcp,
    interface_kind,
    is_online,
    list_interfaces,
    retry_with_backoff,
    test_connection,
    wifi_connect,
    wifi_prepare,
)
from ..lib.prompt import ask_menu, ask_until, ask_yes_no
from ..lib.validate import clean
from . import StepContext, step_main

logger = logging.getLogger(__name__)


class NetworkStep:
    """Get the live system online over a wired or wireless interface."""

    step_id = "network"

    def run(self, ctx: StepContext) -> None:
        cfg = ctx.cfg
        p = ctx.prompter
        logger.info("Starting Network Setup...")

        if is_online(cfg.ping_host, dry_run=ctx.dry_run):
            p.show("An internet connection is already active. No setup needed.")
            return

        interfaces = list_interfaces()
        if not interfaces:
            raise NetworkError("No network interfaces found. Cannot proceed.")

        while True:
            p.show("Available network interfaces:")
            interface = interfaces[ask_menu(p, "Please choose the interface to configure", interfaces)]
            p.show(f"You selected: {interface}")

            if self.connect(ctx, interface):
                p.show("Network setup complete.")
                return
            if not ask_yes_no(p, "Connection failed. Choose another interface or network?"):
                raise NetworkError(f"Could not establish a connection on {interface}")

    def connect(self, ctx: StepContext, interface: str) -> bool:
        kind = interface_kind(interface)
        if kind == "wireless":
            return self._wifi(ctx, interface)
        if kind == "unknown":
            logger.warning("Unrecognized interface type: %s. Attempting with DHCP...", interface)
        return self._wired(ctx, interface)

    def _wired(self, ctx: StepContext, interface: str) -> bool:
        logger.info("Attempting to connect via wired interface: %s...", interface)
        if not dhcp(interface, timeout=ctx.cfg.dhcp_timeout, dry_run=ctx.dry_run):
            logger.error("No DHCP lease on %s within %ss", interface, ctx.cfg.dhcp_timeout)
            ctx.prompter.show("Could not establish a wired connection. Please check your cable and network.")
            return False
        return self._settle_and_test(ctx)

    def _wifi(self, ctx: StepContext, interface: str) -> bool:
        cfg = ctx.cfg
        p = ctx.prompter
        logger.info("Starting Wi-Fi setup for interface: %s...", interface)
        p.show("Scanning for Wi-Fi networks... (This may take a moment)")
        listing = wifi_prepare(interface, dry_run=ctx.dry_run)
        p.show("Available Wi-Fi Networks:")
        p.show(listing.rstrip())
        p.show("--------------------------------------------------------")

        ssid = ask_until(
            p,
            "Please enter the Wi-Fi network name (SSID): ",
            clean,
            invalid="The network name cannot be empty.",
        )
        passphrase: Optional[str] = clean(p.secret("Please enter the Wi-Fi password (leave blank for open network): "))

        p.show(f"Connecting to '{ssid}'...")
        associated = retry_with_backoff(
            lambda: wifi_connect(interface, ssid, passphrase, dry_run=ctx.dry_run),
            attempts=cfg.network_attempts,
            base_delay=cfg.network_backoff,
            what=f"Connecting to {ssid}",
            sleep=ctx.sleep,
        )
        if not associated:
            p.show("Could not establish a Wi-Fi connection. Please check your SSID and password.")
            return False
        return self._settle_and_test(ctx)

    def _settle_and_test(self, ctx: StepContext) -> bool:
        cfg = ctx.cfg
        ctx.prompter.show("Waiting a few seconds for the connection to establish...")
        if not ctx.dry_run:
            ctx.sleep(cfg.connect_settle)
        return test_connection(
            cfg.ping_host,
            attempts=cfg.network_attempts,
            base_delay=cfg.network_backoff,
            sleep=ctx.sleep,
            dry_run=ctx.dry_run,
        )


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(NetworkStep(), argv, prog="network-setup")
