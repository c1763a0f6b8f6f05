"""Configuration module for AudioMuse AIO."""

from .settings import (
    AnalysisCoreSettings,
    BootstrapSettings,
    CacheSettings,
    DatastoreSettings,
    MusicServerSettings,
    Settings,
    TaskSettings,
    get_settings,
)

__all__ = [
    "AnalysisCoreSettings",
    "BootstrapSettings",
    "CacheSettings",
    "DatastoreSettings",
    "MusicServerSettings",
    "Settings",
    "TaskSettings",
    "get_settings",
]
