"""Configuration for slashoor."""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .exceptions import ConfigError


@dataclass(frozen=True)
class Config:
    """Service configuration."""

    beacon_node_url: str = ""
    beacon_node_timeout: float = 120.0
    attester_slashed_script: str = ""
    proposer_slashed_script: str = ""
    metrics_port: Optional[int] = None
    log_level: str = "INFO"
    log_file: str = ""

    @classmethod
    def from_yaml(cls, path: str | Path, **overrides: Any) -> "Config":
        """Load config from a yaml file; non-None overrides take precedence.

        Keys in the file may use dashes or underscores.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file {path} is not a mapping")

        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = str(key).replace("-", "_")
            if name not in known:
                raise ConfigError(f"Unknown configuration key {key!r}")
            values[name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self, require_beacon_node: bool = True) -> "Config":
        """Check the configuration, raising ConfigError on the first problem."""
        for name in ("beacon_node_url", "attester_slashed_script",
                     "proposer_slashed_script", "log_level", "log_file"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ConfigError(f"{name.replace('_', '-')} must be a string, got {value!r}")
        if (isinstance(self.beacon_node_timeout, bool)
                or not isinstance(self.beacon_node_timeout, (int, float))):
            raise ConfigError(
                f"Beacon node timeout must be a number of seconds, got {self.beacon_node_timeout!r}"
            )
        if self.metrics_port is not None and (
                isinstance(self.metrics_port, bool) or not isinstance(self.metrics_port, int)):
            raise ConfigError(f"Metrics port must be an integer, got {self.metrics_port!r}")
        if not self.beacon_node_url:
            if require_beacon_node:
                raise ConfigError("No beacon node URL specified")
        elif not self.beacon_node_url.startswith(("http://", "https://")):
            raise ConfigError(f"Beacon node URL must be http(s): {self.beacon_node_url}")
        if self.beacon_node_timeout <= 0:
            raise ConfigError("Beacon node timeout must be positive")
        if self.metrics_port is not None and not 0 < self.metrics_port < 65536:
            raise ConfigError(f"Invalid metrics port {self.metrics_port}")
        for name in ("attester_slashed_script", "proposer_slashed_script"):
            script = getattr(self, name)
            if not script:
                continue
            if not os.path.isfile(script):
                raise ConfigError(f"{name.replace('_', '-')} {script} does not exist")
            if not os.access(script, os.X_OK):
                raise ConfigError(f"{name.replace('_', '-')} {script} is not executable")
        return self
