"""Application configuration."""

import secrets
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Settings loaded from environment variables (and an optional .env file)."""

    # Environment
    environment: str = "development"  # development, staging, production

    # Development mode (generates an ephemeral key) - MUST be False in production
    dev_mode: bool = False

    # Key material in any supported encoding (hex, base64 or raw text).
    # No default: a missing key is a fatal configuration error outside dev mode.
    encryption_key: Optional[str] = None

    # Optional associated data bound to every ciphertext (UTF-8 text)
    encryption_aad: Optional[str] = None

    # Set when encryption_key was generated at startup
    ephemeral_key: bool = False

    # API keys
    api_key_prefix: str = "atr"

    # PBKDF2-SHA256 work factor for password hashing (OWASP 2024)
    password_iterations: int = 600_000

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _set_dev_defaults(self) -> "Settings":
        """Generate a random key in dev mode; leave it missing otherwise."""
        if self.dev_mode and self.is_production:
            raise ValueError("DEV_MODE must not be enabled in production")
        if self.dev_mode and not self.encryption_key:
            self.encryption_key = secrets.token_hex(32)
            self.ephemeral_key = True
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def associated_data(self) -> bytes | None:
        """Associated data as bytes, or None when not configured."""
        if not self.encryption_aad:
            return None
        return self.encryption_aad.encode("utf-8")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
