import pytest
import yaml
from pathlib import Path

from phasework.config import EngineConfig, get_phasework_home, load_config
from phasework.errors import ConfigError
from phasework.schemas import Severity


def test_get_phasework_home_default(monkeypatch):
    monkeypatch.delenv("PHASEWORK_HOME", raising=False)
    assert get_phasework_home() == Path("~/.config/phasework").expanduser()


def test_get_phasework_home_env_var(monkeypatch, tmp_path):
    custom_home = tmp_path / "custom_home"
    monkeypatch.setenv("PHASEWORK_HOME", str(custom_home))
    assert get_phasework_home() == custom_home


def test_load_config_missing_file_gives_defaults():
    config = load_config()
    assert config == EngineConfig()
    assert config.fatal_severity == Severity.FAILURE
    assert config.plugins == []


def test_load_config_valid(isolated_home):
    isolated_home.mkdir()
    config_path = isolated_home / "config.yaml"
    config_path.write_text(yaml.safe_dump({
        "log_level": "debug",
        "log_format": "structured",
        "log_file": str(isolated_home / "engine.log"),
        "fatal_severity": "unstable",
        "definitions_dir": str(isolated_home / "defs"),
        "plugins": ["my.plugin"],
    }))

    config = load_config()
    assert config.log_level == "DEBUG"
    assert config.log_format == "structured"
    assert config.log_file == isolated_home / "engine.log"
    assert config.fatal_severity == Severity.UNSTABLE
    assert config.definitions_dir == isolated_home / "defs"
    assert config.plugins == ["my.plugin"]


def test_load_config_explicit_path(tmp_path):
    config_path = tmp_path / "other.yaml"
    config_path.write_text("log_level: WARNING\n")
    assert load_config(config_path).log_level == "WARNING"


def test_load_config_empty_file(isolated_home):
    isolated_home.mkdir()
    (isolated_home / "config.yaml").write_text("")
    assert load_config() == EngineConfig()


def test_load_config_invalid_yaml(isolated_home):
    isolated_home.mkdir()
    (isolated_home / "config.yaml").write_text("log_level: [unclosed\n")
    with pytest.raises(ConfigError, match="Invalid YAML syntax"):
        load_config()


def test_load_config_not_a_mapping(isolated_home):
    isolated_home.mkdir()
    (isolated_home / "config.yaml").write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="must hold a mapping"):
        load_config()


def test_load_config_unknown_key(isolated_home):
    isolated_home.mkdir()
    (isolated_home / "config.yaml").write_text("project: x\n")
    with pytest.raises(ConfigError, match="Unknown config keys: project"):
        load_config()


def test_log_level_env_override(isolated_home, monkeypatch):
    isolated_home.mkdir()
    (isolated_home / "config.yaml").write_text("log_level: INFO\n")
    monkeypatch.setenv("PHASEWORK_LOG_LEVEL", "error")
    assert load_config().log_level == "ERROR"


def test_invalid_log_level():
    with pytest.raises(ConfigError, match="Invalid log_level 'LOUD'"):
        EngineConfig(log_level="LOUD")


def test_invalid_log_format():
    with pytest.raises(ConfigError, match="Invalid log_format"):
        EngineConfig(log_format="xml")


def test_invalid_fatal_severity():
    with pytest.raises(ConfigError, match="Invalid fatal_severity"):
        EngineConfig.from_dict({"fatal_severity": "catastrophic"})


def test_success_is_not_a_fatal_severity():
    with pytest.raises(ConfigError, match="cannot be 'success'"):
        EngineConfig(fatal_severity=Severity.SUCCESS)


def test_plugins_must_be_names():
    with pytest.raises(ConfigError, match="plugins must be a list"):
        EngineConfig.from_dict({"plugins": "single.module"})


def test_to_dict_round_trips():
    config = EngineConfig(log_level="DEBUG", fatal_severity=Severity.ABORTED, plugins=["a"])
    assert EngineConfig.from_dict(config.to_dict()) == config
