"""Tests for the install orchestrator state machine."""

import argparse
import json
import os
from dataclasses import replace

import pytest

from archsuite import main as install_main
from archsuite.errors import EXIT_CANCELLED, EnvironmentCheckError, StepFailed, UserAborted, ValidationError
from archsuite.pipeline import STEPS, InstallOrchestrator, PipelineState, find_step
from conftest import ScriptedPrompter

ALL_PAUSES = [""] * len(STEPS)


class FakeRunner:
    """Step runner returning canned exit codes keyed by script name."""

    def __init__(self, codes=None):
        self.codes = codes or {}
        self.calls = []

    def __call__(self, executable, args):
        self.calls.append((executable.name, list(args)))
        return self.codes.get(executable.name, 0)

    @property
    def scripts(self):
        return [name for name, _ in self.calls]


def _orchestrator(cfg, answers, runner=None, **kwargs):
    kwargs.setdefault("root_check", lambda: True)
    return InstallOrchestrator(
        cfg,
        runner=runner or FakeRunner(),
        prompter=ScriptedPrompter(answers),
        **kwargs,
    )


def _record(cfg):
    return json.loads(cfg.state_path.read_text(encoding="utf-8"))


class TestEnvironment:
    def test_requires_live_environment(self, install_cfg, tmp_path):
        cfg = replace(install_cfg, release_file=tmp_path / "missing")
        with pytest.raises(EnvironmentCheckError, match="Arch Linux installation environment"):
            _orchestrator(cfg, []).check_environment()

    def test_requires_root(self, install_cfg):
        o = _orchestrator(install_cfg, [], root_check=lambda: False)
        with pytest.raises(EnvironmentCheckError, match="must be run as root"):
            o.check_environment()

    def test_missing_step_script(self, install_cfg):
        (install_cfg.boot_setup_dir / "clock-setup").unlink()
        with pytest.raises(EnvironmentCheckError, match="clock-setup"):
            _orchestrator(install_cfg, []).check_environment()

    def test_non_executable_step_is_fixed(self, install_cfg):
        script = install_cfg.boot_setup_dir / "user-setup"
        os.chmod(script, 0o644)

        o = _orchestrator(install_cfg, [])
        o.check_environment()

        assert os.access(script, os.X_OK)
        assert o.state is PipelineState.ENVIRONMENT_CHECKED


def test_decline_runs_nothing(install_cfg):
    runner = FakeRunner()
    o = _orchestrator(install_cfg, ["n"], runner=runner)

    assert install_main.run(install_cfg, orchestrator=o) == 0
    assert runner.calls == []
    assert "Installation cancelled." in o.prompter.shown


def test_full_run_in_order(install_cfg):
    runner = FakeRunner()
    o = _orchestrator(install_cfg, ["y", *ALL_PAUSES, "n"], runner=runner, step_args=["--dry-run"])

    assert install_main.run(install_cfg, orchestrator=o) == 0

    assert runner.scripts == [s.script for s in STEPS]
    assert all(args == ["--dry-run"] for _, args in runner.calls)
    assert o.state is PipelineState.COMPLETED
    assert "Remember to unmount filesystems and reboot manually." in o.prompter.shown
    record = _record(install_cfg)
    assert record["execution"]["status"] == "completed"
    assert record["execution"]["completed_steps"] == [s.name for s in STEPS]


def test_failed_step_stops_pipeline(install_cfg):
    runner = FakeRunner({"disk-setup": 1})
    o = _orchestrator(install_cfg, ["y", ""], runner=runner)

    with pytest.raises(StepFailed) as exc:
        o.run()

    assert exc.value.returncode == 1
    assert runner.scripts == ["network-setup", "disk-setup"]
    assert o.state is PipelineState.ABORTED
    assert o.step_index == 1
    assert "  2. Resume the installation: arch-install --start-at disk-setup" in o.prompter.shown
    record = _record(install_cfg)
    assert record["execution"]["failed_step"] == "disk setup"
    assert record["execution"]["completed_steps"] == ["network setup"]


def test_failed_step_exit_code(install_cfg):
    o = _orchestrator(install_cfg, ["y", ""], runner=FakeRunner({"disk-setup": 1}))
    assert install_main.run(install_cfg, orchestrator=o) == 1


def test_cancelled_step_stops_cleanly(install_cfg):
    runner = FakeRunner({"disk-setup": EXIT_CANCELLED})
    o = _orchestrator(install_cfg, ["y", ""], runner=runner)

    with pytest.raises(UserAborted):
        o.run()
    assert runner.scripts == ["network-setup", "disk-setup"]
    assert o.state is PipelineState.ABORTED

    o2 = _orchestrator(install_cfg, ["y", ""], runner=FakeRunner({"disk-setup": EXIT_CANCELLED}))
    assert install_main.run(install_cfg, orchestrator=o2) == 0


def test_usage_error_exit_is_a_failure(install_cfg):
    o = _orchestrator(install_cfg, ["y", ""], runner=FakeRunner({"disk-setup": 2}))

    assert install_main.run(install_cfg, orchestrator=o) == 1
    assert _record(install_cfg)["execution"]["failed_step"] == "disk setup"


def test_fresh_run_forgets_previous_failure(install_cfg):
    failed = _orchestrator(install_cfg, ["y", ""], runner=FakeRunner({"disk-setup": 1}))
    assert install_main.run(install_cfg, orchestrator=failed) == 1

    o = _orchestrator(install_cfg, ["y", *ALL_PAUSES, "n"])
    assert install_main.run(install_cfg, orchestrator=o) == 0

    execution = _record(install_cfg)["execution"]
    assert execution["failed_step"] is None
    assert execution["errors"] == []
    assert execution["completed_steps"] == [s.name for s in STEPS]


def test_resume_keeps_completed_steps(install_cfg):
    failed = _orchestrator(install_cfg, ["y", ""], runner=FakeRunner({"disk-setup": 1}))
    assert install_main.run(install_cfg, orchestrator=failed) == 1

    o = _orchestrator(install_cfg, ["y", "", "", "", "", "", "", "n"])
    o.run(start_at="disk-setup")

    execution = _record(install_cfg)["execution"]
    assert execution["failed_step"] is None
    assert execution["completed_steps"] == [s.name for s in STEPS]


def test_start_at_skips_earlier_steps(install_cfg):
    runner = FakeRunner()
    o = _orchestrator(install_cfg, ["y", "", "", "", "n"], runner=runner)

    o.run(start_at="clock-setup")

    assert runner.scripts == ["clock-setup", "grub-setup", "user-setup"]


def test_reboot_after_success(install_cfg, monkeypatch):
    calls = []
    monkeypatch.setattr("archsuite.pipeline.umount", lambda path, **kw: calls.append(("umount", path, kw)))
    monkeypatch.setattr("archsuite.pipeline.run_cmd", lambda argv, **kw: calls.append(("run", argv)))
    sleeps = []
    cfg = replace(install_cfg, reboot_delay=3)
    o = _orchestrator(cfg, ["y", *ALL_PAUSES, "y"], sleep=sleeps.append)

    o.run()

    assert calls[0] == ("umount", cfg.target, {"recursive": True, "dry_run": False})
    assert calls[1] == ("run", ["reboot"])
    assert sleeps == [1, 1, 1]
    assert "Rebooting in 1 seconds... (Ctrl+C to cancel)" in o.prompter.shown


@pytest.mark.parametrize("name,index", [("network setup", 0), ("disk-setup", 1), ("grub-setup", 5), ("7", 6), ("Base-Setup", 2)])
def test_find_step(name, index):
    assert find_step(name) == index


def test_find_step_unknown():
    with pytest.raises(ValidationError, match="Unknown step"):
        find_step("partition-setup")


def test_step_arguments_forwarded():
    p = argparse.Namespace(config="cfg.yaml", log="/tmp/i.log", dry_run=True)
    args = install_main.step_arguments(p)
    assert args[0] == "--config" and args[1].endswith("cfg.yaml")
    assert args[2:] == ["--log", "/tmp/i.log", "--dry-run"]
