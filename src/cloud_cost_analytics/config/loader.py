"""Configuration loader for Cloud Cost Analytics."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import ValidationError

from cloud_cost_analytics.config.schema import Config
from cloud_cost_analytics.exceptions import ConfigurationError


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir() -> Path:
    """Find the config directory, searching up from current directory."""
    if config_dir := os.environ.get("CONFIG_DIR"):
        return Path(config_dir)

    current = Path.cwd()
    while current != current.parent:
        config_path = current / "config"
        if config_path.is_dir():
            return config_path
        current = current.parent

    return Path("config")


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def load_config(
    config_path: str | Path | None = None,
    environment: str | None = None,
) -> Config:
    """
    Load configuration from YAML files.

    Loads config.yaml as base, then merges environment-specific overrides
    (e.g., config.dev.yaml, config.prod.yaml). Missing files are skipped,
    so an empty directory yields the defaults.

    Args:
        config_path: Path to config directory. If None, searches for config/ directory.
        environment: Environment name (dev, staging, prod). If None, uses CONFIG_ENV
                    environment variable or defaults to 'dev'.

    Returns:
        Config: Validated configuration object.

    Raises:
        ConfigurationError: If a file is not valid YAML or fails validation.
    """
    config_dir = Path(config_path) if config_path else _find_config_dir()
    environment = environment or os.environ.get("CONFIG_ENV", "dev")

    config_data: dict = {}

    base_config_path = config_dir / "config.yaml"
    if base_config_path.exists():
        config_data = _read_yaml(base_config_path)

    env_config_path = config_dir / f"config.{environment}.yaml"
    if env_config_path.exists():
        config_data = _deep_merge(config_data, _read_yaml(env_config_path))

    config_data = _apply_env_overrides(config_data)
    config_data["environment"] = environment

    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_dir}: {e}") from e


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration."""
    env_mappings = {
        "ANALYTICS_SENSITIVITY": ("anomaly_detection", "sensitivity"),
        "ANALYTICS_LOOKBACK_PERIODS": ("anomaly_detection", "lookback_periods"),
        "ANALYTICS_SEASONALITY_PERIODS": ("anomaly_detection", "seasonality_periods"),
        "ANALYTICS_EXCLUDE_WEEKENDS": ("anomaly_detection", "exclude_weekends"),
        "ANALYTICS_TOP_N": ("delta_analysis", "top_n"),
        "ANALYTICS_SIGNIFICANT_CHANGE_THRESHOLD": (
            "delta_analysis",
            "significant_change_threshold",
        ),
        "ANALYTICS_MAX_WORKERS": ("max_workers",),
    }

    for env_var, path in env_mappings.items():
        if value := os.environ.get(env_var):
            current = config_data
            for key in path[:-1]:
                current = current.setdefault(key, {})

            final_key = path[-1]
            if final_key in ("lookback_periods", "seasonality_periods", "top_n", "max_workers"):
                current[final_key] = int(value)
            elif final_key in ("significant_change_threshold",):
                current[final_key] = float(value)
            elif final_key in ("exclude_weekends",):
                current[final_key] = value.lower() in ("true", "1", "yes")
            elif final_key == "sensitivity":
                current[final_key] = value.upper()
            else:
                current[final_key] = value

    return config_data


@lru_cache(maxsize=1)
def get_cached_config() -> Config:
    """
    Get cached configuration singleton.

    Safe to share across workers since Config is frozen.
    """
    return load_config()
