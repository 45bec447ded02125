"""Configuration from XDG paths, an optional YAML file and env vars."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "ngfwstats"
    return Path.home() / ".local" / "share" / "ngfwstats"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "ngfwstats"
    return Path.home() / ".config" / "ngfwstats"


# Env var → (attribute, converter)
_ENV_OVERRIDES = {
    "NGFWSTATS_DB_PATH": ("db_path", Path),
    "NGFWSTATS_STORE_TIMEOUT": ("store_timeout", float),
    "NGFWSTATS_TREND_DAYS": ("trend_days", int),
    "NGFWSTATS_TOP_N": ("top_n", int),
    "NGFWSTATS_SNAPSHOT_RETENTION_DAYS": ("snapshot_retention_days", int),
    "NGFWSTATS_THREAT_RETENTION_DAYS": ("threat_retention_days", int),
    "NGFWSTATS_CONNECTION_RETENTION_DAYS": ("connection_retention_days", int),
    "NGFWSTATS_TRAFFIC_RETENTION_DAYS": ("traffic_retention_days", int),
}

_PATH_KEYS = {"data_dir", "config_dir", "db_path"}


@dataclass
class NgfwStatsConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    db_path: Path | None = None
    store_timeout: float = 5.0
    trend_days: int = 7
    top_n: int = 10
    history_hours: int = 24
    snapshot_retention_days: int = 30
    threat_retention_days: int = 90
    connection_retention_days: int = 30
    traffic_retention_days: int = 7
    verbose: bool = False

    @property
    def database(self) -> Path:
        """Resolved SQLite database location."""
        return self.db_path or self.data_dir / "ngfwstats.db"

    @classmethod
    def load(cls) -> NgfwStatsConfig:
        """Load config: defaults, then config.yaml, then environment variables."""
        config = cls()

        config_file = config.config_dir / "config.yaml"
        if config_file.is_file():
            config.apply(_read_yaml(config_file))

        for env_name, (attr, convert) in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(config, attr, convert(value))

        return config

    def apply(self, overrides: dict) -> None:
        """Apply a mapping of overrides, rejecting unknown keys."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        for key, value in overrides.items():
            if key in _PATH_KEYS and value is not None:
                value = Path(value).expanduser()
            setattr(self, key, value)


def _read_yaml(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping")
    return data
