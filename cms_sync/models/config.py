"""Configuration management for the CMS sync service."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cms_sync.models.data_models import CMSProvider, FallbackStrategy


class CMSConfig(BaseModel):
    """
    Connection parameters for one CMS backend.

    Immutable once built; durations are in seconds.
    """
    model_config = ConfigDict(frozen=True)

    provider: CMSProvider = Field(default=CMSProvider.CUSTOM, description="CMS backend flavour")
    api_url: str = Field(description="Base API URL")
    api_key: str = Field(description="API key or token, sent as a bearer header")
    space_id: Optional[str] = Field(default=None, description="Space/project identifier (Contentful)")
    environment: Optional[str] = Field(default=None, description="Environment name (Contentful)")
    timeout: float = Field(default=10.0, description="Per-request timeout in seconds")
    retry_attempts: int = Field(default=3, description="Retries after the first attempt")
    enable_cache: bool = Field(default=False, description="Cache list/get results in memory")
    cache_ttl: float = Field(default=300.0, description="In-memory cache TTL in seconds")

    @field_validator("api_url", "api_key")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Reject blank URL or key."""
        if not v or not v.strip():
            raise ValueError("Invalid CMS configuration: apiUrl and apiKey are required")
        return v.strip()

    @field_validator("api_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be positive, got: {v}")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retry_attempts must be non-negative, got: {v}")
        return v

    @field_validator("cache_ttl")
    @classmethod
    def validate_cache_ttl(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"cache_ttl must be positive, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_provider_fields(self) -> "CMSConfig":
        """Provider-specific required fields."""
        if self.provider is CMSProvider.CONTENTFUL and not self.space_id:
            raise ValueError("Invalid CMS configuration: spaceId is required for Contentful")
        return self

    def redacted(self) -> Dict[str, Any]:
        """Config summary safe to print or return to callers."""
        return {
            "provider": self.provider.value,
            "api_url": self.api_url,
            "has_api_key": bool(self.api_key),
            "timeout": self.timeout,
            "retry_attempts": self.retry_attempts,
        }


class AppConfig(BaseModel):
    """Top-level service configuration."""

    cms: CMSConfig = Field(description="CMS connection parameters")

    # Synchronization
    sync_batch_size: int = Field(default=10, description="Products per sync batch")
    sync_history_size: int = Field(default=50, description="Sync results kept in memory")

    # Fallback / circuit breaker
    fallback_strategy: FallbackStrategy = Field(default=FallbackStrategy.CMS_FIRST)
    circuit_breaker_threshold: int = Field(default=5, description="Consecutive failures before opening")
    circuit_breaker_recovery: float = Field(default=60.0, description="Seconds the breaker stays open")
    fallback_cache_ttl: float = Field(default=300.0, description="Fallback result cache TTL in seconds")

    # Orchestration
    total_timeout: float = Field(default=300.0, description="Maximum duration of a sync run in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Output
    output_directory: str = Field(default="out", description="Output directory for results")
    output_filename: str = Field(default="sync_result.json", description="Sync result JSON filename")
    store_filename: str = Field(default="products.json", description="Local product snapshot filename")
    status_filename: str = Field(default="sync_status.json", description="Sync status snapshot filename")

    @field_validator("sync_batch_size", "circuit_breaker_threshold")
    @classmethod
    def validate_positive_int(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got: {v}")
        return v

    @field_validator("total_timeout", "circuit_breaker_recovery", "fallback_cache_ttl")
    @classmethod
    def validate_positive_float(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"log_level must be one of DEBUG, INFO, WARNING, ERROR, got: {v}")
        return v

    @property
    def output_path(self) -> Path:
        """Get full sync result file path."""
        return Path(self.output_directory) / self.output_filename

    @property
    def store_path(self) -> Path:
        """Get full local store snapshot path."""
        return Path(self.output_directory) / self.store_filename

    @property
    def status_path(self) -> Path:
        return Path(self.output_directory) / self.status_filename


# Environment variable -> (section, field)
ENV_MAPPINGS = {
    "CMS_PROVIDER": ("cms", "provider"),
    "CMS_API_URL": ("cms", "api_url"),
    "CMS_API_KEY": ("cms", "api_key"),
    "CMS_SPACE_ID": ("cms", "space_id"),
    "CMS_ENVIRONMENT": ("cms", "environment"),
    "CMS_TIMEOUT": ("cms", "timeout"),
    "CMS_RETRY_ATTEMPTS": ("cms", "retry_attempts"),
    "CMS_ENABLE_CACHE": ("cms", "enable_cache"),
    "CMS_CACHE_TTL": ("cms", "cache_ttl"),
    "CMS_SYNC_BATCH_SIZE": (None, "sync_batch_size"),
    "CMS_FALLBACK_STRATEGY": (None, "fallback_strategy"),
    "CMS_TOTAL_TIMEOUT": (None, "total_timeout"),
    "CMS_LOG_LEVEL": (None, "log_level"),
    "CMS_OUTPUT_DIR": (None, "output_directory"),
}


def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect overrides from the environment; pydantic coerces the strings."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for env_var, (section, field_name) in ENV_MAPPINGS.items():
        if env_var not in environ:
            continue
        value = environ[env_var]
        if section:
            overrides.setdefault(section, {})[field_name] = value
        else:
            overrides[field_name] = value
    return overrides


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self.environ = environ
        self._config: Optional[AppConfig] = None

    def load_config(self, cli_overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML > defaults.

        CLI overrides may target the CMS section with a ``cms.`` prefix,
        e.g. ``{"cms.timeout": 5.0}``.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged AppConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict: Dict[str, Any] = {}

        if self.config_file.exists():
            with open(self.config_file, "r") as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        config_dict = _deep_merge(config_dict, _env_overrides(self.environ))

        if cli_overrides:
            nested: Dict[str, Any] = {}
            for key, value in cli_overrides.items():
                if value is None:
                    continue
                if key.startswith("cms."):
                    nested.setdefault("cms", {})[key[4:]] = value
                else:
                    nested[key] = value
            config_dict = _deep_merge(config_dict, nested)

        self._config = AppConfig(**config_dict)
        return self._config

    @property
    def config(self) -> AppConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
