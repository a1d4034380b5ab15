from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from ..lib.chroot import chroot_cmd
from ..lib.prompt import ask_menu, ask_until
from ..lib.validate import valid_hostname, valid_keymap, valid_locale
from . import StepContext, require_installed_target, step_main, write_target_file

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en_US.UTF-8"

COMMON_LOCALES: Tuple[str, ...] = (
    "en_US.UTF-8",
    "en_GB.UTF-8",
    "de_DE.UTF-8",
    "fr_FR.UTF-8",
    "es_ES.UTF-8",
    "it_IT.UTF-8",
    "pt_PT.UTF-8",
    "ru_RU.UTF-8",
    "ja_JP.UTF-8",
    "ko_KR.UTF-8",
    "zh_CN.UTF-8",
    "zh_TW.UTF-8",
)

KEYMAPS: Tuple[Tuple[str, str], ...] = (
    ("us", "US English"),
    ("uk", "UK English"),
    ("de", "German"),
    ("fr", "French"),
    ("es", "Spanish"),
    ("it", "Italian"),
    ("ru", "Russian"),
)

# parse_locale_choice result for the "Custom locale" menu entry
CUSTOM = ""


def parse_locale_choice(answer: str, options: Sequence[str] = COMMON_LOCALES) -> Optional[str]:
    """Menu number, the custom entry, or a literal locale name."""

    a = answer.strip()
    if a.isdigit():
        n = int(a)
        if 1 <= n <= len(options):
            return options[n - 1]
        if n == len(options) + 1:
            return CUSTOM
        return None
    return a if valid_locale(a) else None


def enable_locales(text: str, locales: Iterable[str]) -> str:
    """Uncomment the locale.gen lines for ``locales``."""

    wanted = [re.escape(loc) for loc in locales]
    if not wanted:
        return text
    pattern = re.compile(r"(?m)^#\s*((?:%s)\s)" % "|".join(wanted))
    return pattern.sub(r"\1", text)


def hosts_file(hostname: str) -> str:
    return (
        "127.0.0.1   localhost\n"
        "::1         localhost\n"
        f"127.0.1.1   {hostname}.localdomain {hostname}\n"
    )


class LocaleStep:
    """Locale, console keymap and hostname of the target system."""

    step_id = "locale"

    def run(self, ctx: StepContext) -> None:
        require_installed_target(ctx)
        locale = self.setup_locale(ctx)
        keymap = self.setup_keymap(ctx)
        hostname = self.setup_hostname(ctx)

        p = ctx.prompter
        p.show("Configuration summary:")
        p.show(f"  Locale: {locale}")
        p.show(f"  Keymap: {keymap}")
        p.show(f"  Hostname: {hostname}")

    def setup_locale(self, ctx: StepContext) -> str:
        p = ctx.prompter
        p.show("Common locales:")
        for i, name in enumerate(COMMON_LOCALES, start=1):
            p.show(f"  {i}. {name}")
        p.show(f"  {len(COMMON_LOCALES) + 1}. Custom locale")
        p.show()

        locale = ask_until(
            p,
            f"Select a locale (1-{len(COMMON_LOCALES) + 1}) or enter locale name directly: ",
            parse_locale_choice,
            invalid="Invalid selection. Please try again.",
        )
        if locale == CUSTOM:
            locale = ask_until(
                p,
                "Enter custom locale (e.g., en_US.UTF-8): ",
                lambda a: a.strip() if valid_locale(a.strip()) else None,
                invalid="Invalid locale name. Please try again.",
            )
        logger.info("Selected locale: %s", locale)

        wanted: List[str] = [locale]
        if locale != DEFAULT_LOCALE:
            wanted.append(DEFAULT_LOCALE)

        locale_gen = ctx.target_path("etc/locale.gen")
        if ctx.dry_run:
            logger.info("Would enable %s in %s", ", ".join(wanted), locale_gen)
        else:
            original = locale_gen.read_text(encoding="utf-8") if locale_gen.is_file() else ""
            updated = enable_locales(original, wanted)
            if not re.search(r"(?m)^%s\s" % re.escape(locale), updated):
                logger.warning("%s is not listed in locale.gen; it will not be generated", locale)
            write_target_file(ctx, "etc/locale.gen", updated)

        logger.info("Generating locales...")
        chroot_cmd(ctx.target, ["locale-gen"], dry_run=ctx.dry_run)
        write_target_file(ctx, "etc/locale.conf", f"LANG={locale}\n")
        return locale

    def setup_keymap(self, ctx: StepContext) -> str:
        p = ctx.prompter
        p.show("Common keyboard layouts:")
        labels = [f"{code} ({label})" for code, label in KEYMAPS] + ["Custom layout"]
        idx = ask_menu(p, "Select keyboard layout", labels)
        if idx < len(KEYMAPS):
            keymap = KEYMAPS[idx][0]
        else:
            keymap = ask_until(
                p,
                "Enter keymap name: ",
                lambda a: a.strip() if valid_keymap(a.strip()) else None,
                invalid="Invalid keymap name. Please try again.",
            )
        write_target_file(ctx, "etc/vconsole.conf", f"KEYMAP={keymap}\n")
        logger.info("Keyboard layout set to %s", keymap)
        return keymap

    def setup_hostname(self, ctx: StepContext) -> str:
        hostname = ask_until(
            ctx.prompter,
            "Enter hostname for this system: ",
            lambda a: a.strip() if valid_hostname(a.strip()) else None,
            invalid=(
                "Invalid hostname. Use only letters, numbers, and hyphens.\n"
                "   Hostname must start and end with alphanumeric characters."
            ),
        )
        write_target_file(ctx, "etc/hostname", hostname + "\n")
        write_target_file(ctx, "etc/hosts", hosts_file(hostname))
        logger.info("Hostname set to %s", hostname)
        return hostname


def main(argv: Optional[list[str]] = None) -> int:
    return step_main(LocaleStep(), argv, prog="locale-setup")
