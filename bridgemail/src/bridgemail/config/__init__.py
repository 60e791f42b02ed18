"""Configuration loading, credentials and persisted runtime state."""

from .loader import LoadedConfig, load_config, save_config, set_config_value
from .schema import AppConfig, BridgeSettings, DefaultsSettings, WatchSettings

__all__ = [
    "AppConfig",
    "BridgeSettings",
    "DefaultsSettings",
    "LoadedConfig",
    "WatchSettings",
    "load_config",
    "save_config",
    "set_config_value",
]
