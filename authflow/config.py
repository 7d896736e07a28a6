"""
Configuration module for the authflow engine.

This module uses Pydantic Settings to load and validate environment variables
for token signing, cookie naming, session lifetimes and outbound HTTP calls.

Environment variables are loaded from .env file or system environment.
Every engine object also accepts explicit arguments; settings are only
consulted for values the caller leaves out.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.
    """

    # =========================================================================
    # Token Signing
    # =========================================================================

    AUTH_SECRET: Optional[str] = Field(
        None,
        description="Secret key for signing session and flow tokens (must be cryptographically secure)",
        min_length=32,
    )

    AUTH_JWT_ALGORITHM: str = Field(
        default="HS256",
        description="Token signing algorithm (HS256, HS384 or HS512)",
    )

    # =========================================================================
    # Session Lifetimes
    # =========================================================================

    AUTH_ACCESS_TOKEN_MAX_AGE: int = Field(
        default=60 * 60,
        description="Session (access) token lifetime in seconds",
        ge=60,
    )

    AUTH_REFRESH_TOKEN_MAX_AGE: int = Field(
        default=7 * 24 * 60 * 60,
        description="Refresh token lifetime in seconds",
        ge=60,
    )

    AUTH_CHECK_MAX_AGE: int = Field(
        default=15 * 60,
        description="Lifetime of state / PKCE / nonce cookies in seconds",
        ge=30,
        le=3600,
    )

    # =========================================================================
    # Cookies
    # =========================================================================

    AUTH_USE_SECURE_COOKIES: bool = Field(
        default=False,
        description="Mark cookies Secure and add the __Secure- / __Host- name prefixes",
    )

    AUTH_COOKIE_NAME: str = Field(
        default="authflow",
        description="Base name used for every cookie the engine sets",
        min_length=1,
    )

    AUTH_LOGOUT_REDIRECT: str = Field(
        default="/",
        description="Where to send the client after its session is invalidated",
    )

    # =========================================================================
    # Outbound HTTP
    # =========================================================================

    AUTH_HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for token, userinfo, discovery and revocation requests",
        gt=0,
    )

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("AUTH_JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """
        Validate the algorithm is one of the supported HMAC algorithms.

        Raises:
            ValueError: If algorithm is not supported
        """
        allowed_algorithms = ["HS256", "HS384", "HS512"]

        if v not in allowed_algorithms:
            raise ValueError(
                f"JWT algorithm must be one of {allowed_algorithms}, got: {v}"
            )

        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle. Call ``get_settings.cache_clear()``
    after changing the environment (tests do this).

    Returns:
        Settings instance with all configuration loaded and validated.
    """
    return Settings()
