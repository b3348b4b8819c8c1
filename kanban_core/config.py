# kanban-core: engine configuration
# Override defaults via config.yaml, $KANBAN_CORE_CONFIG or CLI --config.

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

CONFIG_PATH = Path(__file__).parent / "config.yaml"
CONFIG_ENV = "KANBAN_CORE_CONFIG"


@dataclass
class EngineConfig:
    """Runtime configuration for the board engine."""

    # Positioning
    position_gap: float = 1000.0
    position_floor: float = 0.0

    # Analytics
    hub_count: int = 5
    critical_path_size: int = 5
    critical_path_bottlenecks: int = 2
    days_per_card: int = 5          # flat estimate, not a schedule

    # Dependency graph
    max_dependency_depth: int = 10_000

    # Logging
    log_level: str = "INFO"

    def validate(self) -> "EngineConfig":
        """Raise ConfigError for values the engine cannot work with."""
        if self.position_gap <= 2:
            raise ConfigError(f"position_gap must be greater than 2, got {self.position_gap}")
        for name in ("hub_count", "critical_path_size", "critical_path_bottlenecks", "days_per_card"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.max_dependency_depth < 1:
            raise ConfigError(f"max_dependency_depth must be >= 1, got {self.max_dependency_depth}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log_level: {self.log_level}")
        return self

    @classmethod
    def load(cls, path: Optional[str] = None) -> "EngineConfig":
        """Load config from YAML file, falling back to defaults when absent."""
        if path is None:
            path = os.environ.get(CONFIG_ENV)
        cfg_path = Path(path) if path else CONFIG_PATH

        if not cfg_path.exists():
            if path:
                raise ConfigError(f"Config file not found: {cfg_path}")
            return cls().validate()

        try:
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{cfg_path} must contain a mapping, got {type(data).__name__}")

        known = {f.name for f in fields(cls)}
        try:
            cfg = cls(**{k: v for k, v in data.items() if k in known})
            cfg.position_gap = float(cfg.position_gap)
            cfg.position_floor = float(cfg.position_floor)
            return cfg.validate()
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid value in {cfg_path}: {e}") from e
