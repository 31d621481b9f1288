"""Configuration management system using Pydantic v2 and YAML.

This module provides type-safe configuration loading with validation
for the session pool, the hardened client and the API consumers.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigFileNotFoundError, ConfigurationError


class PoolConfig(BaseModel):
    """Sizing and lifetime of the per-origin credential pool."""

    min_threshold: int = Field(default=3, ge=1, description="Replenish when fewer valid tokens remain")
    max_capacity: int = Field(default=20, ge=1, description="Maximum tokens kept per origin")
    lifetime_minutes: float = Field(default=10.0, gt=0, description="Token time-to-live")
    snapshot_path: str = Field(default="./data/session_pool.json", description="Persisted pool snapshot")

    @model_validator(mode='after')
    def validate_threshold(self) -> 'PoolConfig':
        """Ensure the pool can actually reach its replenish threshold."""
        if self.min_threshold > self.max_capacity:
            raise ValueError(
                f"min_threshold ({self.min_threshold}) must not exceed "
                f"max_capacity ({self.max_capacity})"
            )
        return self

    @property
    def lifetime(self) -> timedelta:
        return timedelta(minutes=self.lifetime_minutes)

    @classmethod
    def single_token(cls, snapshot_path: str = "./data/session_token.json") -> 'PoolConfig':
        """Long-lived single token variant (one cookie, refreshed daily)."""
        return cls(
            min_threshold=1,
            max_capacity=1,
            lifetime_minutes=24 * 60,
            snapshot_path=snapshot_path,
        )


class ReplenishConfig(BaseModel):
    """Pacing between sequential token acquisitions."""

    base_delay_seconds: float = Field(default=0.5, ge=0.0, description="Fixed delay before each attempt")
    max_jitter_seconds: float = Field(default=1.0, ge=0.0, description="Upper bound of random extra delay")


class HttpConfig(BaseModel):
    """Configuration for the hardened HTTP client."""

    timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for API calls")
    landing_timeout_seconds: float = Field(default=5.0, gt=0, description="Timeout for token landing requests")
    max_connections: int = Field(default=10, ge=1, description="Connection cap for the (proxied) connector")
    chrome_version: str = Field(default="120.0.0.0", description="Chrome version advertised in headers")
    accept_language: str = Field(default="en-US,en;q=0.9", description="Accept-Language header")
    platform: str = Field(default="Windows", description="sec-ch-ua-platform value")
    proxy_settings_path: str = Field(default="proxy-settings.json", description="Optional SOCKS proxy settings file")

    @field_validator('chrome_version')
    @classmethod
    def validate_chrome_version(cls, v: str) -> str:
        """Chrome versions are dotted numerics, e.g. 120.0.0.0."""
        parts = v.split(".")
        if not parts or not all(part.isdigit() for part in parts):
            raise ValueError(f"Invalid chrome_version: {v}")
        return v


class ApiConfig(BaseModel):
    """Configuration for the marketplace API consumers."""

    max_attempts: int = Field(default=3, ge=1, description="Attempts per logical API operation")
    per_page: int = Field(default=96, ge=1, le=960, description="Catalog page size")
    default_origin: str = Field(default="co.uk", description="Origin used when none is given")


class AppConfig(BaseModel):
    """Root configuration model containing all sub-configurations."""

    pool: PoolConfig = Field(default_factory=PoolConfig)
    replenish: ReplenishConfig = Field(default_factory=ReplenishConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    origins: list[str] = Field(default_factory=lambda: ["co.uk", "com"], description="Known origin keys")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Choose from: {valid_levels}")
        return v_upper

    @field_validator('origins')
    @classmethod
    def validate_origins(cls, v: list[str]) -> list[str]:
        """Origins are bare domain suffixes such as 'co.uk' or 'fr'."""
        if not v:
            raise ValueError("At least one origin is required")
        cleaned = [origin.strip().lstrip(".").lower() for origin in v]
        if any(not origin or "/" in origin for origin in cleaned):
            raise ValueError(f"Invalid origin list: {v}")
        return cleaned

    @classmethod
    def from_yaml(cls, config_path: Path | str) -> 'AppConfig':
        """Load and validate a configuration from a YAML file.

        Raises:
            ConfigFileNotFoundError: If the file does not exist
            ConfigurationError: If the YAML is malformed or fails validation
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigFileNotFoundError(
                f"Configuration file not found: {config_path}",
                path=str(config_path),
            )

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_dict = yaml.safe_load(f) or {}
            return cls.model_validate(config_dict)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Malformed YAML in {config_path}: {e}",
                context={"path": str(config_path)},
            ) from e
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration in {config_path}: {e}",
                context={"path": str(config_path)},
            ) from e


# Singleton pattern for configuration
_config: Optional[AppConfig] = None


def load_config(config_path: Optional[Path | str] = None) -> AppConfig:
    """Load and validate configuration.

    Resolution order: explicit ``config_path``, the SESSIONPOOL_CONFIG
    environment variable, then config/config.yaml in the project root.
    Only the implicit default location may be absent, in which case the
    built-in defaults are used.

    Args:
        config_path: Path to configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigFileNotFoundError: If an explicitly requested file doesn't exist
        ConfigurationError: If configuration is invalid
    """
    if config_path is not None:
        return AppConfig.from_yaml(config_path)

    env_config_path = os.environ.get('SESSIONPOOL_CONFIG')
    if env_config_path:
        return AppConfig.from_yaml(env_config_path)

    project_root = Path(__file__).parent.parent.parent
    default_path = project_root / "config" / "config.yaml"
    if default_path.exists():
        return AppConfig.from_yaml(default_path)

    return AppConfig()


def get_config(config_path: Optional[Path | str] = None, reload: bool = False) -> AppConfig:
    """Get configuration instance (singleton pattern).

    Args:
        config_path: Path to configuration file (only used on first call or if reload=True)
        reload: Force reload of configuration

    Returns:
        Cached or newly loaded AppConfig instance
    """
    global _config

    if _config is None or reload:
        _config = load_config(config_path)

    return _config


def reset_config() -> None:
    """Reset cached configuration (useful for testing)."""
    global _config
    _config = None
