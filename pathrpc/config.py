"""Configuration Management for pathrpc

This module provides centralized configuration for the batching client and the
batch-executing server using Pydantic settings. Values can be supplied in code
or through ``PATHRPC_*`` environment variables.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_API_PREFIX = "pathrpc"


def normalize_prefix(prefix: Optional[str]) -> str:
    """Strip surrounding slashes; an empty prefix falls back to the default mount path."""
    cleaned = (prefix or "").strip().strip("/")
    return cleaned or DEFAULT_API_PREFIX


@dataclass
class BatchingConfig:
    """Configuration for client-side call batching."""

    enabled: bool = True
    max_batch_size: int = 20
    debounce_ms: float = 50
    max_url_size: int = 2048
    max_retries: int = 3

    def __post_init__(self):
        """Validate batching configuration."""
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")

        if self.debounce_ms < 0:
            raise ValueError("debounce_ms must be non-negative")

        if self.max_url_size < 1:
            raise ValueError("max_url_size must be at least 1")

        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


class ClientConfig(BaseSettings):
    """Settings for the RPC client."""

    base_url: str = Field(default="http://localhost:8000", description="Server base URL")
    api_prefix: str = Field(default=DEFAULT_API_PREFIX, description="Mount path of the batch endpoint")
    timeout_seconds: float = Field(default=30.0, description="Timeout for one batch request")

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        return normalize_prefix(v)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    model_config = {"env_prefix": "PATHRPC_", "case_sensitive": False}


class ServerConfig(BaseSettings):
    """Settings for the batch endpoint and executor."""

    api_prefix: str = Field(default=DEFAULT_API_PREFIX, description="Mount path of the batch endpoint")
    expose_internal_errors: bool = Field(
        default=True, description="Send unexpected exception messages to the caller"
    )
    max_calls_per_request: int = Field(default=100, description="Largest batch accepted")

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        return normalize_prefix(v)

    @field_validator("max_calls_per_request")
    @classmethod
    def validate_max_calls(cls, v):
        if v < 1:
            raise ValueError("max_calls_per_request must be at least 1")
        return v

    model_config = {"env_prefix": "PATHRPC_", "case_sensitive": False}


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    log_level: str = "INFO"
    log_format: str = "console"

    def __post_init__(self):
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.log_level}")

        valid_formats = ["console", "json"]
        if self.log_format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.log_format}")


@dataclass
class PathRpcConfig:
    """Main configuration class for pathrpc."""

    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    batching: BatchingConfig = field(default_factory=BatchingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "PathRpcConfig":
        """Load configuration from environment variables."""

        if env_file:
            cls._load_env_file(env_file)

        batching = BatchingConfig(
            enabled=cls._get_bool_env("PATHRPC_BATCHING", True),
            max_batch_size=cls._get_int_env("PATHRPC_MAX_BATCH_SIZE", 20),
            debounce_ms=cls._get_float_env("PATHRPC_DEBOUNCE_MS", 50.0),
            max_url_size=cls._get_int_env("PATHRPC_MAX_URL_SIZE", 2048),
            max_retries=cls._get_int_env("PATHRPC_MAX_RETRIES", 3),
        )

        logging = LoggingConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "console"),
        )

        return cls(
            client=ClientConfig(),
            server=ServerConfig(),
            batching=batching,
            logging=logging,
        )

    @staticmethod
    def _load_env_file(env_file: str):
        """Load environment variables from file."""
        env_path = Path(env_file)
        if not env_path.exists():
            return

        with open(env_path, "r") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ[key.strip()] = value.strip()

    @staticmethod
    def _get_bool_env(key: str, default: bool) -> bool:
        """Get boolean environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    @staticmethod
    def _get_int_env(key: str, default: int) -> int:
        """Get integer environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def _get_float_env(key: str, default: float) -> float:
        """Get float environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    def validate(self) -> List[str]:
        """Validate the entire configuration and return any errors."""
        errors = []

        if self.client.api_prefix != self.server.api_prefix:
            errors.append(
                f"Client prefix '{self.client.api_prefix}' does not match "
                f"server prefix '{self.server.api_prefix}'"
            )

        if self.batching.max_batch_size > self.server.max_calls_per_request:
            errors.append("max_batch_size is larger than the server's max_calls_per_request")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "client": {
                "base_url": self.client.base_url,
                "api_prefix": self.client.api_prefix,
                "timeout_seconds": self.client.timeout_seconds,
            },
            "server": {
                "api_prefix": self.server.api_prefix,
                "expose_internal_errors": self.server.expose_internal_errors,
                "max_calls_per_request": self.server.max_calls_per_request,
            },
            "batching": {
                "enabled": self.batching.enabled,
                "max_batch_size": self.batching.max_batch_size,
                "debounce_ms": self.batching.debounce_ms,
                "max_url_size": self.batching.max_url_size,
                "max_retries": self.batching.max_retries,
            },
            "logging": {
                "log_level": self.logging.log_level,
                "log_format": self.logging.log_format,
            },
        }

    def __str__(self) -> str:
        return (
            f"PathRpcConfig(prefix={self.server.api_prefix}, "
            f"batching={'on' if self.batching.enabled else 'off'})"
        )


# Global configuration instance
_global_config: Optional[PathRpcConfig] = None


def get_config() -> PathRpcConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = PathRpcConfig.from_env()
    return _global_config


def set_config(config: PathRpcConfig):
    """Set the global configuration instance."""
    global _global_config

    errors = config.validate()
    if errors:
        raise ValueError(f"Configuration validation failed: {errors}")

    _global_config = config


def reset_config():
    """Reset the global configuration to default."""
    global _global_config
    _global_config = None
