from __future__ import annotations

import re
from typing import Optional

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")
USERNAME_RE = re.compile(r"^[a-z_][a-z0-9_-]*$")
# en_US.UTF-8, de_DE@euro, ca_ES.UTF-8@valencia, C.UTF-8
LOCALE_RE = re.compile(r"^([a-z]{2,3}(_[A-Z]{2})?|C)(\.[A-Za-z0-9-]+)?(@[a-z]+)?$")
KEYMAP_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
USERNAME_MAX = 32


def valid_hostname(name: str) -> bool:
    return bool(HOSTNAME_RE.match(name))


def valid_username(name: str) -> bool:
    return bool(USERNAME_RE.match(name)) and len(name) <= USERNAME_MAX


def valid_locale(name: str) -> bool:
    return bool(LOCALE_RE.match(name))


def valid_keymap(name: str) -> bool:
    return bool(KEYMAP_RE.match(name))


def clean(value: str) -> Optional[str]:
    """Strip input; empty answers become None."""

    v = value.strip()
    return v or None
