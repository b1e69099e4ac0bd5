"""
Blueshift configuration

Loaded from a YAML file, then overridden from the environment.

Example blueshift.yaml:

    migrations_dir: db/migrations
    history_table: schema_migrations
    primary:
      driver: sqlite
      database: db/primary.sqlite
    analytics:
      driver: sqlite
      database: db/analytics.sqlite

Lookup order for the file: --config flag > BLUESHIFT_CONFIG > ./blueshift.yaml.
The file is optional.
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

DEFAULT_CONFIG_PATH = Path("blueshift.yaml")
DEFAULT_MIGRATIONS_DIR = Path("db") / "migrations"

ENV_CONFIG = "BLUESHIFT_CONFIG"
ENV_MIGRATIONS_DIR = "BLUESHIFT_MIGRATIONS_DIR"
ENV_DATABASES = {
    "primary": "BLUESHIFT_PRIMARY_DATABASE",
    "analytics": "BLUESHIFT_ANALYTICS_DATABASE",
}


class ConfigError(Exception):
    """Raised for unreadable or invalid configuration"""
    pass


@dataclass
class BackendSettings:
    """Connection settings for one backend."""
    driver: str = "sqlite"
    database: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, section: str, data: Optional[Dict[str, Any]]) -> "BackendSettings":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"'{section}' must be a mapping")
        data = dict(data)
        settings = cls(
            driver=str(data.pop("driver", "sqlite")),
            database=data.pop("database", None),
        )
        options = data.pop("options", None) or {}
        if data:
            unknown = ", ".join(sorted(data))
            raise ConfigError(f"Unknown keys in '{section}': {unknown}")
        settings.options = dict(options)
        return settings


@dataclass
class BlueshiftConfig:
    """Effective configuration for a run."""
    migrations_dir: Path = DEFAULT_MIGRATIONS_DIR
    history_table: str = "schema_migrations"
    allow_missing: bool = False
    primary: BackendSettings = field(default_factory=BackendSettings)
    analytics: BackendSettings = field(default_factory=BackendSettings)

    def backend(self, name: str) -> BackendSettings:
        """Settings for 'primary' or 'analytics'."""
        if name == "primary":
            return self.primary
        if name == "analytics":
            return self.analytics
        raise ConfigError(f"Unknown backend section: {name!r}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["migrations_dir"] = str(self.migrations_dir)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlueshiftConfig":
        known = {"migrations_dir", "history_table", "allow_missing", "primary", "analytics"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        config = cls()
        if data.get("migrations_dir"):
            config.migrations_dir = Path(data["migrations_dir"])
        if data.get("history_table"):
            config.history_table = str(data["history_table"])
        config.allow_missing = bool(data.get("allow_missing", False))
        config.primary = BackendSettings.from_dict("primary", data.get("primary"))
        config.analytics = BackendSettings.from_dict("analytics", data.get("analytics"))
        return config


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """
    Get the configuration file path.

    Priority: explicit path > BLUESHIFT_CONFIG env var > ./blueshift.yaml.
    """
    if path:
        return Path(path)
    env_path = os.getenv(ENV_CONFIG)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[Union[str, Path]] = None) -> BlueshiftConfig:
    """
    Load configuration from YAML and apply environment overrides.

    Args:
        path: Explicit config file; must exist when given

    Raises:
        ConfigError: If the file is missing (when explicit), unparsable or invalid
    """
    config_path = resolve_config_path(path)
    data: Dict[str, Any] = {}

    if config_path.exists():
        try:
            data = yaml.safe_load(config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
    elif path:
        raise ConfigError(f"Config file not found: {config_path}")

    config = BlueshiftConfig.from_dict(data)

    env_dir = os.getenv(ENV_MIGRATIONS_DIR)
    if env_dir:
        config.migrations_dir = Path(env_dir)
    for section, var in ENV_DATABASES.items():
        value = os.getenv(var)
        if value:
            config.backend(section).database = value

    return config
