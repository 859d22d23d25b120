"""Campaign Reports - Configuration Module.

This module provides secure configuration management with
Fernet encryption for sensitive credentials.
"""

from .config_manager import (
    AppConfig,
    CacheConfig,
    ConfigError,
    ConfigManager,
    DatabaseConfig,
    PollingConfig,
    ReportingApiConfig,
)

__all__ = [
    "AppConfig",
    "CacheConfig",
    "ConfigError",
    "ConfigManager",
    "DatabaseConfig",
    "PollingConfig",
    "ReportingApiConfig",
]
