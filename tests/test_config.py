"""Tests for archsuite.config and archsuite.logging_utils."""

import logging
from pathlib import Path

import pytest

from archsuite.config import BuilderConfig, InstallConfig, apply_overrides, load_builder_config, load_install_config
from archsuite.errors import ConfigError
from archsuite.logging_utils import level_from_env


class TestBuilderLayout:
    def test_fixed_layout_under_base_dir(self, tmp_path):
        cfg = BuilderConfig(base_dir=tmp_path)

        assert cfg.build_dir == tmp_path / "archiso-build"
        assert cfg.profile_dir == tmp_path / "archiso-build" / "profiles" / "releng"
        assert cfg.iso_file == tmp_path / "archiso-build" / "output" / "custom-arch.iso"
        assert cfg.checksum_file.name == "custom-arch.iso.sha256"
        assert cfg.installed_scripts_dir == cfg.profile_dir / "airootfs" / "root" / "install-scripts"
        assert cfg.state_path == cfg.logs_dir / "build_state.json"

    def test_config_is_immutable(self):
        cfg = BuilderConfig()
        with pytest.raises(AttributeError):
            cfg.iso_name = "other.iso"  # type: ignore[misc]


class TestOverrides:
    def test_unknown_key_rejected(self):
        with pytest.raises(ConfigError, match="Unknown config keys: bogus"):
            apply_overrides(InstallConfig(), {"bogus": 1})

    def test_values_coerced_to_field_types(self):
        cfg = apply_overrides(
            InstallConfig(),
            {
                "user_groups": "wheel, audio",
                "reboot_delay": "10",
                "network_backoff": 1,
                "dry_run": "true",
                "target_root": "/target",
            },
        )

        assert cfg.user_groups == ("wheel", "audio")
        assert cfg.reboot_delay == 10
        assert cfg.network_backoff == 1.0
        assert cfg.dry_run is True
        assert cfg.target_root == Path("/target")

    def test_false_string_is_false(self):
        assert apply_overrides(InstallConfig(), {"dry_run": "no"}).dry_run is False

    def test_bad_number_raises(self):
        with pytest.raises(ConfigError, match="reboot_delay"):
            apply_overrides(InstallConfig(), {"reboot_delay": "soon"})


class TestLoadFromYaml:
    def test_no_path_returns_defaults(self):
        assert load_install_config(None) == InstallConfig()

    def test_relative_paths_resolve_against_config_file(self, tmp_path):
        conf = tmp_path / "conf" / "builder.yaml"
        conf.parent.mkdir()
        conf.write_text("base_dir: ../work\nmin_ram_gb: 4\nrequired_packages: [archiso]\n", encoding="utf-8")

        cfg = load_builder_config(str(conf))

        assert cfg.base_dir == conf.parent.resolve() / "../work"
        assert cfg.min_ram_gb == 4
        assert cfg.required_packages == ("archiso",)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_install_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping_rejected(self, tmp_path):
        conf = tmp_path / "list.yaml"
        conf.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            load_install_config(str(conf))

    def test_non_yaml_extension_rejected(self, tmp_path):
        conf = tmp_path / "conf.json"
        conf.write_text("{}", encoding="utf-8")
        with pytest.raises(ConfigError, match="YAML"):
            load_install_config(str(conf))


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, logging.INFO),
        ("normal", logging.INFO),
        ("debug", logging.DEBUG),
        ("DEBUG", logging.DEBUG),
        ("verbose", logging.INFO),
    ],
)
def test_log_level_from_env(value, expected):
    env = {} if value is None else {"LOG_LEVEL": value}
    assert level_from_env(env) == expected
