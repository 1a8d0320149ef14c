"""Configuration package for runtime settings and startup validation."""

from .settings import (
    AppSettings,
    ClientSettings,
    SettingsLoadError,
    config_load_client_settings,
    config_load_settings,
)

__all__ = [
    "AppSettings",
    "ClientSettings",
    "SettingsLoadError",
    "config_load_settings",
    "config_load_client_settings",
]
