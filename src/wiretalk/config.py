"""Configuration management for wiretalk."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness settings."""

    model_config = SettingsConfigDict(
        env_prefix="WIRETALK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Connection Configuration
    host: str = Field(default="127.0.0.1", description="Host used when a connection only names a port")
    connect_timeout: float = Field(default=5.0, gt=0, description="Seconds allowed for one connection to establish")
    close_timeout: float = Field(default=1.0, ge=0, description="Seconds to wait for transports to report closure")

    # Payload Configuration
    encoding: Optional[str] = Field(default="utf-8", description="Codec for text payloads, or None for raw bytes")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")


def get_settings(**overrides: object) -> Settings:
    """Get harness settings.

    Args:
        **overrides: Field values that take precedence over the environment

    Returns:
        Settings instance
    """
    # pydantic-settings loads WIRETALK_* variables and the .env file on its own
    return Settings(**overrides)
