"""Tests for archsuite.lib.bootloader."""

import pytest

from archsuite.lib.bootloader import edit_grub_defaults, parent_disk

GRUB_DEFAULTS = """\
GRUB_DEFAULT=saved
GRUB_TIMEOUT=10
GRUB_CMDLINE_LINUX_DEFAULT="loglevel=3 quiet"
#GRUB_COLOR_NORMAL="light-blue/black"
#GRUB_COLOR_HIGHLIGHT="light-cyan/blue"
#GRUB_DISABLE_OS_PROBER=false
"""


def test_edit_grub_defaults():
    out = edit_grub_defaults(GRUB_DEFAULTS, timeout=5, default=0)

    assert "GRUB_TIMEOUT=5\n" in out
    assert "GRUB_DEFAULT=0\n" in out
    assert 'GRUB_COLOR_NORMAL="light-blue/black"' in out.splitlines()
    assert out.splitlines().count("GRUB_DISABLE_OS_PROBER=false") == 1
    assert 'GRUB_CMDLINE_LINUX_DEFAULT="loglevel=3 quiet"' in out


def test_edit_grub_defaults_is_idempotent():
    once = edit_grub_defaults(GRUB_DEFAULTS, timeout=5, default=0)
    assert edit_grub_defaults(once, timeout=5, default=0) == once


@pytest.mark.parametrize(
    "partition,disk",
    [("/dev/sda3", "/dev/sda"), ("/dev/nvme0n1p3", "/dev/nvme0n1"), ("/dev/mmcblk0p2", "/dev/mmcblk0")],
)
def test_parent_disk(partition, disk):
    assert parent_disk(partition) == disk
