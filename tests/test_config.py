"""Tests for configuration loading, validation and serialization."""

import pytest
import yaml

from devagent.config import (
    CONFIG_FIELDS,
    Config,
    GuardLimits,
    _validate_bool,
    _validate_int_range,
    validate_config_value,
)


class TestConfigLoad:
    """Config.load() from YAML files."""

    def test_load_from_yaml(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.base_url == "http://localhost:4321"
        assert config.model == "qwen2.5-coder-7b"
        assert config.max_steps == 20
        assert config.stall_timeout == 15.0
        assert config.require_review_request is True
        assert config._config_source == str(config_yaml_file.resolve())

    def test_load_guard_section(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.guards.duplicate == 6
        assert config.guards.chain_error == 2
        assert config.guards.review_write == GuardLimits().review_write

    def test_defaults_when_no_config(self, tmp_dir):
        config = Config.load(str(tmp_dir))
        assert config.base_url == "http://localhost:1234"
        assert config.max_steps == 50
        assert config._config_source == ""
        assert config.project_root == str(tmp_dir.resolve())

    def test_global_config_fallback(self, tmp_dir, isolated_config):
        with open(isolated_config / "config.yml", "w") as f:
            yaml.dump({"model": "global-model"}, f)
        assert Config.load(str(tmp_dir)).model == "global-model"

    def test_invalid_values_ignored(self, tmp_dir):
        with open(tmp_dir / ".agent.conf.yml", "w") as f:
            yaml.dump({"max-steps": "lots", "base-url": "localhost", "port": 80}, f)
        config = Config.load(str(tmp_dir))
        assert config.max_steps == 50
        assert config.base_url == "http://localhost:1234"
        assert config.port == 80

    def test_corrupt_yaml_ignored(self, tmp_dir):
        (tmp_dir / ".agent.conf.yml").write_text("base-url: [unclosed\n")
        assert Config.load(str(tmp_dir)).base_url == "http://localhost:1234"


class TestEnvironment:

    def test_env_overrides_yaml(self, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("LM_STUDIO_MODEL", "env-model")
        monkeypatch.setenv("LM_STUDIO_BASE_URL", "http://gpu-box:1234/")
        config = Config.load(str(tmp_dir))
        assert config.model == "env-model"
        assert config.base_url == "http://gpu-box:1234"

    def test_env_numbers_clamped(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("AGENT_MAX_STEPS", "9999")
        monkeypatch.setenv("PORT", "not-a-port")
        config = Config.load(str(tmp_dir))
        assert config.max_steps == 500
        assert config.port == 3009

    def test_env_verbose(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("AGENT_VERBOSE", "yes")
        assert Config.load(str(tmp_dir)).verbose is True

    def test_dotenv_file(self, tmp_dir):
        (tmp_dir / ".env").write_text("LM_STUDIO_MODEL=dotenv-model\n")
        config = Config.load(str(tmp_dir))
        assert config.model == "dotenv-model"

    def test_workspace_dir(self, tmp_dir, monkeypatch):
        (tmp_dir / "ws").mkdir()
        monkeypatch.setenv("WORKSPACE_DIR", "ws")
        config = Config.load(str(tmp_dir))
        assert config.workspace_root == (tmp_dir / "ws").resolve()


class TestValidation:

    def test_int_range(self):
        assert _validate_int_range("7", 1, 10) == (True, 7, "")
        ok, value, _ = _validate_int_range(99, 1, 10)
        assert not ok and value == 10

    def test_bool(self):
        assert _validate_bool("off") == (True, False, "")
        assert _validate_bool("maybe")[0] is False

    @pytest.mark.parametrize("key,value", [
        ("max-steps", 0),
        ("base-url", "localhost:1234"),
        ("report-file", "../REPORT.md"),
        ("report-file", "/etc/passwd"),
        ("stall-timeout", "soon"),
        ("guards.duplicate", 0),
    ])
    def test_rejects(self, key, value):
        assert validate_config_value(key, value)[0] is False

    def test_unknown_key(self):
        ok, _, msg = validate_config_value("colour", "blue")
        assert not ok
        assert "Unknown configuration key" in msg

    def test_model_has_no_validator(self):
        assert validate_config_value("model", 7) == (True, "7", "")

    def test_every_field_maps_to_an_attribute(self):
        config = Config()
        for key in CONFIG_FIELDS:
            assert config.get_config_value(key) is not None


class TestSetAndSave:

    def test_set_guard_value(self):
        config = Config()
        ok, err = config.set_config_value("guards.duplicate", "7", persist=False)
        assert ok and err == ""
        assert config.guards.duplicate == 7
        assert config.get_config_value("guards.duplicate") == 7

    def test_set_invalid_value(self):
        config = Config()
        ok, err = config.set_config_value("max-steps", "-3", persist=False)
        assert not ok
        assert "between" in err
        assert config.max_steps == 50

    def test_reset(self):
        config = Config(max_steps=9)
        config.reset_config_value("max-steps", persist=False)
        assert config.max_steps == 50

    def test_save_round_trip(self, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))
        config.set_config_value("model", "saved-model")
        config.set_config_value("guards.follow-up", 5)

        reloaded = Config.load(str(tmp_dir))
        assert reloaded.model == "saved-model"
        assert reloaded.guards.follow_up == 5
        assert reloaded.guards.duplicate == 6

    def test_save_defaults_to_global_file(self, tmp_dir, isolated_config):
        config = Config.load(str(tmp_dir))
        config.save()
        data = yaml.safe_load((isolated_config / "config.yml").read_text())
        assert data["max-steps"] == 50
        assert data["guards"]["duplicate-threshold"] == 3

    def test_summary_keys(self):
        summary = Config().summary()
        assert summary["Endpoint"] == "http://localhost:1234"
        assert summary["Config"] == "(defaults)"


class TestGuardLimits:

    def test_from_dict_accepts_both_spellings(self):
        limits = GuardLimits.from_dict({"review-write": 5, "follow_up": "4"})
        assert limits.review_write == 5
        assert limits.follow_up == 4

    def test_from_dict_clamps(self):
        limits = GuardLimits.from_dict({"duplicate": 0, "chain-error": "x"})
        assert limits.duplicate == 1
        assert limits.chain_error == 3

    def test_to_dict_round_trip(self):
        limits = GuardLimits(duplicate=9)
        assert GuardLimits.from_dict(limits.to_dict()) == limits
