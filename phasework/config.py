"""
Configuration management for phasework.

Loads engine settings from config.yaml under the phasework home directory
($PHASEWORK_HOME, default ~/.config/phasework). A missing file means
defaults; an invalid file is a ConfigError.

Example config.yaml:

    log_level: INFO
    log_format: pretty        # or: structured
    log_file: ~/.local/state/phasework/engine.log
    fatal_severity: failure
    definitions_dir: ~/pipelines
    plugins:
      - mycompany.phasework_steps
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from phasework.errors import ConfigError
from phasework.schemas import Severity

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("pretty", "structured")

CONFIG_KEYS = ("log_level", "log_format", "log_file", "fatal_severity", "definitions_dir", "plugins")


def get_phasework_home() -> Path:
    """Directory holding config.yaml ($PHASEWORK_HOME or ~/.config/phasework)."""
    home = os.environ.get("PHASEWORK_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".config" / "phasework"


@dataclass
class EngineConfig:
    """
    Engine settings.

    Attributes:
        log_level: Logging level name
        log_format: "pretty" (rich console) or "structured" (JSON lines)
        log_file: Optional file that also receives log records
        fatal_severity: Phase severity at or above which remaining phases are skipped
        definitions_dir: Directory searched by `phasework specs`
        plugins: Modules whose register(registry) adds step contributors
    """
    log_level: str = "INFO"
    log_format: str = "pretty"
    log_file: Optional[Path] = None
    fatal_severity: Severity = Severity.FAILURE
    definitions_dir: Optional[Path] = None
    plugins: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Validate settings.

        Raises:
            ConfigError: If any value is out of range
        """
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level '{self.log_level}' (expected one of: {', '.join(LOG_LEVELS)})"
            )
        self.log_level = self.log_level.upper()

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"Invalid log_format '{self.log_format}' (expected one of: {', '.join(LOG_FORMATS)})"
            )

        if not isinstance(self.fatal_severity, Severity):
            raise ConfigError(f"Invalid fatal_severity: {self.fatal_severity!r}")
        if self.fatal_severity == Severity.SUCCESS:
            raise ConfigError("fatal_severity cannot be 'success'")

        if not isinstance(self.plugins, list) or not all(isinstance(p, str) for p in self.plugins):
            raise ConfigError("plugins must be a list of module names")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """
        Build a config from a parsed config.yaml mapping.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        unknown = sorted(set(data) - set(CONFIG_KEYS))
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        kwargs: dict[str, Any] = {}
        if data.get("log_level") is not None:
            kwargs["log_level"] = str(data["log_level"])
        if data.get("log_format") is not None:
            kwargs["log_format"] = str(data["log_format"])
        if data.get("log_file"):
            kwargs["log_file"] = Path(str(data["log_file"])).expanduser()
        if data.get("fatal_severity") is not None:
            try:
                kwargs["fatal_severity"] = Severity.from_string(str(data["fatal_severity"]))
            except ValueError as e:
                raise ConfigError(f"Invalid fatal_severity: {e}") from e
        if data.get("definitions_dir"):
            kwargs["definitions_dir"] = Path(str(data["definitions_dir"])).expanduser()
        if data.get("plugins") is not None:
            kwargs["plugins"] = data["plugins"]

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_level": self.log_level,
            "log_format": self.log_format,
            "log_file": str(self.log_file) if self.log_file else None,
            "fatal_severity": self.fatal_severity.value,
            "definitions_dir": str(self.definitions_dir) if self.definitions_dir else None,
            "plugins": list(self.plugins),
        }


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration.

    Args:
        config_path: Path to config file. Defaults to <phasework home>/config.yaml

    Returns:
        EngineConfig (defaults if the file does not exist)

    Raises:
        ConfigError: If the file is not valid YAML or holds invalid values
    """
    if config_path is None:
        config_path = get_phasework_home() / "config.yaml"

    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}")
        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError(f"Configuration file must hold a mapping: {config_path}")
            data = loaded

    level_override = os.environ.get("PHASEWORK_LOG_LEVEL")
    if level_override:
        data = {**data, "log_level": level_override}

    return EngineConfig.from_dict(data)
