from __future__ import annotations

import os
from functools import lru_cache

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = structlog.get_logger()

SUPPORTED_ENCODINGS = ("cl100k_base", "o200k_base", "p50k_base")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1")


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


class Settings(BaseModel):
    """Configuration settings for the mock completions service."""

    model_config = ConfigDict(validate_default=True)

    # Tokenizer configuration
    default_encoding: str = Field(
        default_factory=lambda: os.getenv("DEFAULT_ENCODING", "cl100k_base"),
        description="Encoding used for model names that are not in the lookup table",
    )
    logprobs_seed: int | None = Field(
        default_factory=lambda: _optional_int("LOGPROBS_SEED"),
        description="Seed for mock logprobs; unset draws fresh randomness per request",
    )

    # Server
    host: str = Field(
        default_factory=lambda: os.getenv("HOST", "0.0.0.0"), description="Bind address"
    )
    port: int = Field(
        default_factory=lambda: int(os.getenv("PORT", "8000")),
        ge=1,
        le=65535,
        description="Bind port",
    )

    # Logging and monitoring
    log_level: str = Field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"),
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    metrics_enabled: bool = Field(
        default_factory=lambda: _env_flag("METRICS_ENABLED", "true"),
        description="Enable Prometheus metrics",
    )
    max_log_text_chars: int = Field(
        default_factory=lambda: int(os.getenv("MAX_LOG_TEXT_CHARS", "512")),
        ge=0,
        le=10000,
        description="Maximum characters of prompt text to include in logs",
    )

    # Development and debugging
    debug: bool = Field(
        default_factory=lambda: _env_flag("DEBUG", "false"),
        description="Enable debug mode",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("default_encoding")
    @classmethod
    def validate_default_encoding(cls, v):
        v = v.strip()
        if v not in SUPPORTED_ENCODINGS:
            raise ValueError(f"default_encoding must be one of {list(SUPPORTED_ENCODINGS)}")
        return v

    def get_env_info(self) -> dict:
        """Get environment information for debugging."""
        return {
            "default_encoding": self.default_encoding,
            "logprobs_seeded": self.logprobs_seed is not None,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
            "debug": self.debug,
            "metrics_enabled": self.metrics_enabled,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance with validation."""
    try:
        settings = Settings()
        logger.info("Configuration loaded successfully", **settings.get_env_info())
        return settings
    except Exception as e:
        logger.error("Failed to load configuration", error=str(e))
        raise
