"""Configuration and settings management using pydantic-settings."""
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_LEVEL_NAMES = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="STEPGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")

    # HTTP request step
    http_default_timeout_ms: int = Field(
        default=5000,
        description="Timeout used when an HTTP step does not set one",
    )
    http_max_timeout_ms: int = Field(
        default=60000,
        description="Upper bound applied to every HTTP step timeout",
    )

    # Code step sandbox limits
    code_timeout_s: float = Field(
        default=10,
        description="Wall-clock limit for a user code step in seconds",
    )
    code_memory_limit_mb: int = Field(
        default=128,
        description="Address-space limit for a user code step in megabytes",
    )

    # Layout
    layout_rankdir: Literal["LR", "TB"] = Field(
        default="LR",
        description="Rank direction: LR places ranks left-to-right, TB top-to-bottom",
    )
    layout_nodesep: float = Field(default=80, description="Gap between nodes of one rank")
    layout_ranksep: float = Field(default=250, description="Gap between ranks")
    node_width: float = Field(default=220, description="Rendered node width")
    node_height: float = Field(default=80, description="Rendered node height")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a standard level name."""
        level = v.upper()
        if level not in _LEVEL_NAMES:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator(
        "http_default_timeout_ms",
        "http_max_timeout_ms",
        "code_timeout_s",
        "code_memory_limit_mb",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate that limits are positive."""
        if v <= 0:
            raise ValueError("limits must be positive")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
