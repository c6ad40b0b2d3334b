"""TOML configuration loader with deep merge support."""

import os
import tomllib
from pathlib import Path
from typing import Any

from trailguard.exceptions import ConfigurationError


def get_config_dir() -> Path | None:
    """Locate the configuration directory.

    TRAILGUARD_CONFIG_DIR wins when set and must exist. Otherwise a config/
    directory is searched for in the working directory and up to four
    parents. Returns None when nothing is found; every setting has a code
    default, so running without TOML files is valid.
    """
    config_dir_env = os.environ.get("TRAILGUARD_CONFIG_DIR")
    if config_dir_env:
        path = Path(config_dir_env)
        if not path.is_dir():
            raise ConfigurationError(f"Config directory not found: {config_dir_env}")
        return path

    current = Path.cwd()
    for _ in range(5):
        candidate = current / "config"
        if (candidate / "default.toml").exists():
            return candidate
        current = current.parent
    return None


def get_environment() -> str:
    """Get the current environment from TRAILGUARD_ENV (default: development)."""
    return os.environ.get("TRAILGUARD_ENV", "development")


def load_toml(file_path: Path) -> dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigurationError: If the file is missing or not valid TOML
    """
    try:
        with file_path.open("rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {file_path}: {e}") from e


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into base recursively; override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_dir: Path | None = None,
    env: str | None = None,
) -> dict[str, Any]:
    """Load layered TOML configuration.

    Loading order:
    1. {config_dir}/default.toml
    2. {config_dir}/{env}.toml

    Both files are optional. Returns an empty dict when no config directory
    exists.
    """
    directory = config_dir if config_dir is not None else get_config_dir()
    if directory is None:
        return {}

    environment = env or get_environment()
    config: dict[str, Any] = {}

    default_path = directory / "default.toml"
    if default_path.exists():
        config = load_toml(default_path)

    env_path = directory / f"{environment}.toml"
    if env_path.exists():
        config = deep_merge(config, load_toml(env_path))

    return config
