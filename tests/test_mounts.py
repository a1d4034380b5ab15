"""Tests for tmpfs scratch space and unmount handling in archsuite.lib.mounts."""

import pytest

from archsuite.errors import BuildError, CommandError
from archsuite.lib.command import CmdResult
from archsuite.lib.mounts import TmpfsScratch, umount
from conftest import FakeImageBuilder


class FakeMountTable:
    """Stands in for run_cmd: tracks tmpfs mounts and can fail one command."""

    def __init__(self, fail_when=None, error=None):
        self.mounted = set()
        self.calls = []
        self.fail_when = fail_when
        self.error = error

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        if self.fail_when is not None and self.fail_when(argv):
            raise self.error
        rc = 0
        if argv[0] == "mountpoint":
            rc = 0 if argv[-1] in self.mounted else 1
        elif argv[0] == "mount":
            self.mounted.add(argv[-1])
        elif argv[0] == "umount":
            self.mounted.discard(argv[-1])
        return CmdResult(argv=argv, returncode=rc, stdout="", stderr="")

    def commands(self, tool):
        return [c for c in self.calls if c[0] == tool]


def _install(monkeypatch, table):
    monkeypatch.setattr("archsuite.lib.mounts.run_cmd", table)
    return table


@pytest.fixture
def scratch(tmp_path):
    return TmpfsScratch(tmp_path / "tmpfs", work_size="6G", cache_size="3G", use_sudo=False)


def test_setup_and_cleanup_round(monkeypatch, scratch):
    table = _install(monkeypatch, FakeMountTable())

    scratch.setup()
    assert table.mounted == {str(scratch.work_dir), str(scratch.cache_dir)}
    assert ["mount", "-t", "tmpfs", "-o", "size=6G,noatime", "tmpfs", str(scratch.work_dir)] in table.calls

    scratch.base.mkdir()
    scratch.cleanup()
    assert table.mounted == set()
    assert ["rm", "-rf", str(scratch.base)] in table.calls


def test_setup_skips_existing_mounts(monkeypatch, scratch):
    table = _install(monkeypatch, FakeMountTable())
    table.mounted.add(str(scratch.work_dir))

    scratch.setup()

    assert [c[-1] for c in table.commands("mount")] == [str(scratch.cache_dir)]


def test_cleanup_without_setup_is_harmless(monkeypatch, scratch):
    table = _install(monkeypatch, FakeMountTable())

    scratch.cleanup()

    assert table.commands("umount") == []
    assert table.commands("rm") == []


def test_umount_not_mounted_is_success(monkeypatch, tmp_path):
    table = _install(monkeypatch, FakeMountTable())

    assert umount(tmp_path / "mnt", recursive=True) is True
    assert table.commands("umount") == []


def test_umount_recursive(monkeypatch, tmp_path):
    table = _install(monkeypatch, FakeMountTable())
    target = str(tmp_path / "mnt")
    table.mounted.add(target)

    assert umount(target, recursive=True) is True
    assert table.commands("umount") == [["umount", "-R", target]]


def test_umount_failure_reported(monkeypatch, tmp_path):
    target = str(tmp_path / "mnt")

    def busy(argv, **kwargs):
        rc = 1 if argv[0] == "umount" else 0
        return CmdResult(argv=list(argv), returncode=rc, stdout="", stderr="target is busy")

    monkeypatch.setattr("archsuite.lib.mounts.run_cmd", busy)
    assert umount(target) is False


class TestBuildReleasesScratch:
    """A build never leaves tmpfs mounted, whatever stops it."""

    def _builder(self, make_builder, scratch, **kw):
        b = make_builder(scratch=scratch, **kw)
        b.provision()
        return b

    def test_partial_setup_is_unmounted(self, monkeypatch, make_builder, scratch):
        cache = str(scratch.cache_dir)
        table = _install(
            monkeypatch,
            FakeMountTable(
                fail_when=lambda argv: argv[0] == "mount" and argv[-1] == cache,
                error=CommandError(["mount"], 32, "mount failed"),
            ),
        )
        image = FakeImageBuilder()
        b = self._builder(make_builder, scratch, image_builder=image)

        with pytest.raises(CommandError):
            b.build()

        assert table.mounted == set()
        assert image.calls == []

    def test_interrupt_during_setup(self, monkeypatch, make_builder, scratch):
        table = _install(
            monkeypatch,
            FakeMountTable(fail_when=lambda argv: argv[0] == "chown", error=KeyboardInterrupt()),
        )
        b = self._builder(make_builder, scratch)

        with pytest.raises(KeyboardInterrupt):
            b.build()

        assert table.mounted == set()

    def test_interrupt_during_image_build(self, monkeypatch, make_builder, scratch):
        table = _install(monkeypatch, FakeMountTable())

        class InterruptedBuilder:
            def build(self, *, profile_dir, work_dir, output_dir):
                assert table.mounted == {str(scratch.work_dir), str(scratch.cache_dir)}
                raise KeyboardInterrupt

        b = self._builder(make_builder, scratch, image_builder=InterruptedBuilder())

        with pytest.raises(KeyboardInterrupt):
            b.build()

        assert table.mounted == set()

    def test_failed_image_build(self, monkeypatch, make_builder, scratch):
        table = _install(monkeypatch, FakeMountTable())
        b = self._builder(make_builder, scratch, image_builder=FakeImageBuilder(fail=True))

        with pytest.raises(BuildError):
            b.build()

        assert table.mounted == set()
