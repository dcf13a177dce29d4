"""AdSync - Configuration Module.

This module provides secure configuration management with
Fernet encryption for the ads platform credentials.
"""

from .config_manager import (
    AppConfig,
    CacheConfig,
    ConfigError,
    ConfigManager,
    PlatformConfig,
    RecommendationConfig,
    SyncConfig,
)

__all__ = [
    "AppConfig",
    "CacheConfig",
    "ConfigError",
    "ConfigManager",
    "PlatformConfig",
    "RecommendationConfig",
    "SyncConfig",
]
