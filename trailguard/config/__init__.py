"""Configuration loading for trailguard.

Configuration is loaded from TOML files with environment variable overrides.
Components never read settings themselves; callers pass the relevant section
in at construction time.

Usage:
    from trailguard.config import get_settings

    settings = get_settings()
    signer = Signer(settings.integrity)
"""

from functools import lru_cache

from trailguard.config.loader import load_config
from trailguard.config.settings import Settings, build_settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings instance.

    The result is cached for the lifetime of the process.
    Call `get_settings.cache_clear()` to reload configuration.
    """
    return build_settings(load_config())


def reload_settings() -> Settings:
    """Clear the settings cache and reload configuration."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["get_settings", "reload_settings", "build_settings", "Settings"]
