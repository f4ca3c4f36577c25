"""Configuration management for prompt-shape."""

from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Exception raised for configuration errors."""
    pass


@dataclass
class SourceConfig:
    """Configuration for fetching session logs over HTTP."""

    timeout_s: float = 30.0
    headers: dict = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Configuration for the outcome/shape store."""

    db_path: str = "data/prompt_shape.db"


@dataclass
class Config:
    """Top-level configuration."""

    source: SourceConfig = field(default_factory=SourceConfig)
    store: StoreConfig = field(default_factory=StoreConfig)


def default_config() -> Config:
    return Config()


def _section(data: dict, name: str) -> dict:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' block in config must be a mapping")
    return value


def _build_config(source_data: dict, store_data: dict) -> Config:
    headers = source_data.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigError("'source.headers' must be a mapping")
    try:
        timeout_s = float(source_data.get("timeout_s", 30.0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'source.timeout_s' must be a number: {e}")
    return Config(
        source=SourceConfig(
            timeout_s=timeout_s,
            headers={str(k): str(v) for k, v in headers.items()},
        ),
        store=StoreConfig(
            db_path=str(store_data.get("db_path", "data/prompt_shape.db")),
        ),
    )


def apply_overrides(config: Config, overrides: dict) -> Config:
    """Apply partial overrides to a Config. Overrides are merged shallowly per section.

    Args:
        config: Base configuration.
        overrides: Dict with optional keys source, store. Each value is a dict
            of field names to override (e.g. {"db_path": "x.db"}). None values
            are ignored.

    Returns:
        A new Config with overrides applied.
    """
    source_data = {
        "timeout_s": config.source.timeout_s,
        "headers": dict(config.source.headers),
    }
    if overrides.get("source"):
        source_data.update({k: v for k, v in overrides["source"].items() if v is not None})

    store_data = {"db_path": config.store.db_path}
    if overrides.get("store"):
        store_data.update({k: v for k, v in overrides["store"].items() if v is not None})

    return _build_config(source_data, store_data)


def config_to_dict(config: Config) -> dict:
    """Convert Config to a dict suitable for JSON."""
    return {
        "source": {
            "timeout_s": config.source.timeout_s,
            "headers": dict(config.source.headers),
        },
        "store": {
            "db_path": config.store.db_path,
        },
    }


def load_config(path: str = "config.yml") -> Config:
    """Load configuration from a YAML file.

    Accepts both config.yml and config.yaml: if the given path does not exist,
    the other extension is tried in the same directory. Missing sections take
    their defaults.

    Args:
        path: Path to the config file (e.g. config.yml or config.yaml).

    Returns:
        A Config object.

    Raises:
        FileNotFoundError: If neither the config file nor the alternate exists.
        ConfigError: If the file is not valid YAML or a section is malformed.
    """
    config_path = Path(path)
    if not config_path.exists():
        alt = config_path.with_suffix(".yaml" if config_path.suffix == ".yml" else ".yml")
        if alt.exists():
            config_path = alt
        else:
            raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config root in {config_path} must be a mapping")

    return _build_config(_section(data, "source"), _section(data, "store"))
