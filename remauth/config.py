"""
Configuration module for the REM Auth service.

This module uses Pydantic Settings to load and validate environment variables
for the identity provider (AD Auth) redirect flow, session and CSRF lifetimes,
the shared Redis store and the HTTP listener.

Settings are loaded once at startup, stored on ``app.state.settings`` and read
from there by every component.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Only the two identity provider URLs have no usable default; they are
    checked where they are used so the service can still start (and report
    health) without them.
    """

    # =========================================================================
    # HTTP Listener
    # =========================================================================

    REM_AUTH_HTTP_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the auth server",
    )

    REM_AUTH_HTTP_PORT: int = Field(
        default=8080,
        description="Port to bind the auth server",
        ge=1,
        le=65535,
    )

    # =========================================================================
    # AD Auth Identity Provider
    # =========================================================================

    REM_AUTH_ADAUTH_URL: Optional[str] = Field(
        None,
        description="URL the auto-submit form POSTs to (identity provider entry point)",
    )

    REM_AUTH_ADAUTH_TARGETNAME: str = Field(
        default="remauth",
        description="Value of the 'authTarget' form field sent to the identity provider",
    )

    REM_AUTH_ADAUTH_PUBLICKEY_URL: Optional[str] = Field(
        None,
        description="URL serving the identity provider's PEM public signing key",
    )

    REM_AUTH_ADAUTH_GROUPPREFIX: str = Field(
        default="",
        description="Value of the 'groupPrefix' form field (filters returned AD groups)",
    )

    REM_AUTH_ADAUTH_PUBLICKEY_TTL: int = Field(
        default=60,
        description="Seconds to cache the identity provider public key",
        validation_alias=AliasChoices(
            "REM_AUTH_ADAUTH_PUBLICKEY_TTL",
            "AD_AUTH_PUBLICKEY_TTL",
        ),
    )

    # =========================================================================
    # Session / CSRF Lifetimes
    # =========================================================================

    REM_AUTH_SESSION_TTL: int = Field(
        default=3600,
        description="Session lifetime in seconds (store TTL and cookie max-age)",
    )

    REM_AUTH_CSRF_TOKEN_TTL: int = Field(
        default=60,
        description="CSRF-Auth token lifetime in seconds (store TTL and cookie max-age)",
    )

    REM_AUTH_SESSION_COOKIE_NAME: str = Field(
        default="REM_SESSION",
        description="Name of the session cookie",
        min_length=1,
    )

    REM_AUTH_SESSION_KEY_PREFIX: str = Field(
        default="session:",
        description="Key prefix for session records in the shared store",
    )

    # =========================================================================
    # Error Page Hand-off
    # =========================================================================

    REM_AUTH_ERROR_COOKIE_NAME: str = Field(
        default="REM_AUTH_ERROR",
        description="Cookie carrying status/description to the error page",
        min_length=1,
    )

    REM_AUTH_ERROR_PAGE_URL: str = Field(
        default="../error",
        description="Where the error page meta-refresh points (relative to /auth/adauth)",
    )

    REM_AUTH_APP_ROOT_URL: str = Field(
        default="/",
        description="Where the browser lands after the flow completes",
    )

    # =========================================================================
    # Shared Store / Logging
    # =========================================================================

    REM_REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL for sessions, CSRF tokens and the key cache",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator(
        "REM_AUTH_SESSION_TTL",
        "REM_AUTH_CSRF_TOKEN_TTL",
        "REM_AUTH_ADAUTH_PUBLICKEY_TTL",
    )
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """TTLs are handed to Redis ``EX`` and cookie ``Max-Age``; both need > 0."""
        if v <= 0:
            raise ValueError(f"TTL must be a positive number of seconds, got: {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return level

    @field_validator("REM_AUTH_ADAUTH_URL", "REM_AUTH_ADAUTH_PUBLICKEY_URL")
    @classmethod
    def blank_url_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If an environment variable is present but invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate settings the flow needs and return a status report.

    Called during application startup; missing identity provider URLs are
    reported as errors but do not stop the service.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not settings.REM_AUTH_ADAUTH_URL:
        errors.append("AD Auth URL is not set (REM_AUTH_ADAUTH_URL)")

    if not settings.REM_AUTH_ADAUTH_PUBLICKEY_URL:
        errors.append("AD Auth public key URL is not set (REM_AUTH_ADAUTH_PUBLICKEY_URL)")

    if settings.REM_AUTH_CSRF_TOKEN_TTL > settings.REM_AUTH_SESSION_TTL:
        warnings.append("CSRF token TTL is longer than the session TTL")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "session_ttl": settings.REM_AUTH_SESSION_TTL,
        "csrf_token_ttl": settings.REM_AUTH_CSRF_TOKEN_TTL,
    }
