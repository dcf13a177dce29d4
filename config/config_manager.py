"""Encrypted configuration management for AdSync.

This module provides secure storage and retrieval of the ads platform
credentials and the sync/recommendation tunables using Fernet symmetric
encryption. Configuration is stored in the ~/.adsync/ directory.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, Field, SecretStr

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


class PlatformConfig(BaseModel):
    """Ads platform API configuration."""

    base_url: str
    account_id: str
    access_token: Optional[SecretStr] = None


class SyncConfig(BaseModel):
    """Hierarchy sync tunables."""

    max_active_campaigns: int = 8
    max_ad_groups_per_campaign: int = 10
    line_item_spacing_seconds: float = 0.26
    empty_campaign_spacing_seconds: float = 0.32
    campaign_spacing_seconds: float = 0.36
    fast_timeout_seconds: float = 12.0
    basic_timeout_seconds: float = 10.0
    poll_timeout_seconds: float = 7.0
    actions_delay_seconds: float = 1.2
    actions_window_days: int = 3
    actions_limit: int = 30
    rate_limit_cooldown_seconds: float = 60.0
    rate_limit_notice_interval_seconds: float = 120.0


class RecommendationConfig(BaseModel):
    """Recommendation lifecycle configuration."""

    confirm_window_seconds: float = 3.0
    remember_dismissed: bool = False


class CacheConfig(BaseModel):
    """Hierarchy cache configuration."""

    path: str = Field(default="~/.adsync/hierarchy_cache.db")
    enabled: bool = True


class AppConfig(BaseModel):
    """Application configuration."""

    platform: Optional[PlatformConfig] = None
    sync: SyncConfig = Field(default_factory=SyncConfig)
    recommendations: RecommendationConfig = Field(default_factory=RecommendationConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000


class ConfigManager:
    """Manages encrypted configuration storage.

    Configuration is stored in ~/.adsync/ with encryption keys
    managed separately for security.

    Attributes:
        config_dir: Path to the configuration directory.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".adsync"
    CONFIG_FILE = "config.enc"
    KEY_FILE = ".key"

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize the configuration manager.

        Args:
            config_dir: Custom configuration directory path.
        """
        self.config_dir = Path(config_dir) if config_dir else self.DEFAULT_CONFIG_DIR
        self._fernet: Optional[Fernet] = None
        self._config: Optional[AppConfig] = None

    def _ensure_config_dir(self) -> None:
        """Create the configuration directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        # Set restrictive permissions on config directory
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
        """Get existing encryption key or create a new one."""
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
        if self._fernet is None:
            self._fernet = Fernet(self._get_or_create_key())
        return self._fernet

    def _encrypt(self, data: str) -> bytes:
        return self._get_fernet().encrypt(data.encode("utf-8"))

    def _decrypt(self, data: bytes) -> str:
        """Decrypt Fernet-encrypted bytes.

        Raises:
            ConfigError: If decryption fails.
        """
        try:
            return self._get_fernet().decrypt(data).decode("utf-8")
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
            encrypted = self._encrypt(self._serialize_config(config))
            self.config_path.write_bytes(encrypted)
            os.chmod(self.config_path, 0o600)
            self._config = config
            logger.info(f"Configuration saved to {self.config_path}")
        except OSError as e:
            raise ConfigError(f"Failed to save configuration: {e}") from e

    def load(self) -> AppConfig:
        """Load configuration from encrypted storage.

        Returns:
            The loaded AppConfig.

        Raises:
            ConfigError: If configuration doesn't exist or can't be loaded.
        """
        if not self.config_path.exists():
            raise ConfigError(
                f"Configuration not found at {self.config_path}. "
                "Save an AppConfig with ConfigManager.save() first."
            )

        try:
            decrypted = self._decrypt(self.config_path.read_bytes())
            data = json.loads(decrypted)
            self._config = AppConfig(**data)
            return self._config
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid configuration format: {e}") from e
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to load configuration: {e}") from e

    def get_config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def get_config_or_default(self) -> AppConfig:
        """Like get_config(), but fall back to defaults when nothing is saved."""
        if not self.is_configured():
            logger.warning(f"No configuration at {self.config_path}, using defaults")
            self._config = AppConfig()
        return self.get_config()

    def update(self, **kwargs: Any) -> AppConfig:
        """Update top-level configuration sections and save.

        Args:
            **kwargs: AppConfig fields to replace (e.g. sync=SyncConfig(...)).

        Returns:
            The updated AppConfig.
        """
        config = self.get_config()
        config_dict = config.model_dump()

        for key, value in kwargs.items():
            if key in config_dict:
                config_dict[key] = value.model_dump() if isinstance(value, BaseModel) else value

        new_config = AppConfig(**config_dict)
        self.save(new_config)
        return new_config

    def get_cache_path(self) -> Path:
        """Expanded path of the hierarchy cache database."""
        return Path(self.get_config().cache.path).expanduser()

    def get_platform(self) -> PlatformConfig:
        """Get the ads platform settings.

        Raises:
            ConfigError: If the platform section is not set.
        """
        config = self.get_config()
        if not config.platform:
            raise ConfigError("Ads platform configuration not set")
        return config.platform

    def is_configured(self) -> bool:
        return self.config_path.exists()

    def reset(self) -> None:
        """Delete all configuration files.

        Warning: This will delete the encryption key and all stored credentials.
        """
        if self.config_path.exists():
            self.config_path.unlink()
        if self.key_path.exists():
            self.key_path.unlink()
        self._config = None
        self._fernet = None
        logger.info("Configuration reset complete")
