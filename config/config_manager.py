"""Encrypted configuration management for Campaign Reports.

This module provides secure storage and retrieval of the reporting
gateway credentials and pipeline settings using Fernet symmetric
encryption. Configuration is stored in ~/.campaign-reports/ directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, SecretStr

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


class ReportingApiConfig(BaseModel):
    """Reporting gateway (Google Ad Manager GraphQL) configuration."""

    endpoint: str
    api_key: Optional[SecretStr] = None
    request_timeout: float = 30.0
    max_retries: int = 3  # HTTP 429 retries per gateway call
    base_delay: float = 1.0


class PollingConfig(BaseModel):
    """Report job polling limits."""

    poll_interval: float = Field(default=2.0, ge=0.5)
    max_poll_interval: float = 15.0
    backoff_factor: float = Field(default=1.5, ge=1.0)
    max_wait: float = Field(default=600.0, gt=0)  # Give up on a job after this many seconds
    attempt_timeout: float = Field(default=30.0, gt=0)


class CacheConfig(BaseModel):
    """Report cache configuration."""

    redis_url: str = "redis://localhost:6379/0"
    ttl_seconds: int = Field(default=3600, gt=0)
    key_prefix: str = "campaign:gam-line-item-report"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = Field(default="~/.campaign-reports/reports.db")


class AppConfig(BaseModel):
    """Application configuration."""

    reporting: Optional[ReportingApiConfig] = None
    polling: PollingConfig = Field(default_factory=PollingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    line_item_limit: int = 500
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000


class ConfigManager:
    """Manages encrypted configuration storage.

    Configuration is stored in ~/.campaign-reports/ with encryption keys
    managed separately for security.

    Attributes:
        config_dir: Path to the configuration directory.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".campaign-reports"
    CONFIG_FILE = "config.enc"
    KEY_FILE = ".key"

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_dir: Custom configuration directory path.
        """
        self.config_dir = config_dir or self.DEFAULT_CONFIG_DIR
        self._fernet: Optional[Fernet] = None
        self._config: Optional[AppConfig] = None

    def _ensure_config_dir(self) -> None:
        """Create the configuration directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self.config_dir, 0o700)

    @property
    def key_path(self) -> Path:
        """Path to the encryption key file."""
        return self.config_dir / self.KEY_FILE

    @property
    def config_path(self) -> Path:
        """Path to the encrypted configuration file."""
        return self.config_dir / self.CONFIG_FILE

    def _get_or_create_key(self) -> bytes:
        """Get existing encryption key or create a new one.

        Returns:
            The Fernet encryption key bytes.
        """
        self._ensure_config_dir()

        if self.key_path.exists():
            key = self.key_path.read_bytes()
        else:
            key = Fernet.generate_key()
            self.key_path.write_bytes(key)
            os.chmod(self.key_path, 0o600)
            logger.info(f"Generated new encryption key at {self.key_path}")

        return key

    def _get_fernet(self) -> Fernet:
        """Get or create the Fernet cipher instance."""
        if self._fernet is None:
            key = self._get_or_create_key()
            self._fernet = Fernet(key)
        return self._fernet

    def _encrypt(self, data: str) -> bytes:
        fernet = self._get_fernet()
        return fernet.encrypt(data.encode("utf-8"))

    def _decrypt(self, data: bytes) -> str:
        """Decrypt Fernet-encrypted bytes.

        Raises:
            ConfigError: If decryption fails.
        """
        fernet = self._get_fernet()
        try:
            return fernet.decrypt(data).decode("utf-8")
        except InvalidToken as e:
            raise ConfigError("Failed to decrypt configuration. Invalid key.") from e

    def _serialize_config(self, config: AppConfig) -> str:
        """Serialize configuration to JSON, exposing secrets."""
        data = config.model_dump()
        self._expose_secrets(data)
        return json.dumps(data, indent=2)

    def _expose_secrets(self, data: dict) -> None:
        """Recursively expose SecretStr values in a dict."""
        for key, value in data.items():
            if isinstance(value, dict):
                self._expose_secrets(value)
            elif hasattr(value, "get_secret_value"):
                data[key] = value.get_secret_value()

    def save(self, config: AppConfig) -> None:
        """Save configuration to encrypted storage.

        Raises:
            ConfigError: If save operation fails.
        """
        self._ensure_config_dir()

        try:
            serialized = self._serialize_config(config)
            encrypted = self._encrypt(serialized)
            self.config_path.write_bytes(encrypted)
            os.chmod(self.config_path, 0o600)
            self._config = config
            logger.info(f"Configuration saved to {self.config_path}")
        except Exception as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e

    def load(self) -> AppConfig:
        """Load configuration from encrypted storage.

        Raises:
            ConfigError: If configuration doesn't exist or can't be loaded.
        """
        if not self.config_path.exists():
            raise ConfigError(f"Configuration not found at {self.config_path}.")

        encrypted = self.config_path.read_bytes()
        decrypted = self._decrypt(encrypted)
        try:
            data = json.loads(decrypted)
            self._config = AppConfig(**data)
            return self._config
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid configuration format: {e}") from e
        except Exception as e:
            raise ConfigError(f"Failed to load configuration: {e}") from e

    def get_config(self) -> AppConfig:
        """Get the current configuration.

        Falls back to defaults when nothing has been saved yet.
        """
        if self._config is None:
            self._config = self.load() if self.is_configured() else AppConfig()
        return self._config

    def get_reporting_config(self) -> ReportingApiConfig:
        """Get the reporting gateway configuration.

        Raises:
            ConfigError: If the reporting gateway is not configured.
        """
        config = self.get_config()
        if not config.reporting:
            raise ConfigError("Reporting gateway configuration not set")
        return config.reporting

    def is_configured(self) -> bool:
        return self.config_path.exists()
