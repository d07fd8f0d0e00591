"""
strive/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (hosted auth URL, public key, storage)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal

from strive.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Required values are checked by validate_settings() on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # Hosted auth / database service
    SUPABASE_URL: Optional[str] = Field(
        default=None,
        description="Hosted auth service base URL (https://<project>.supabase.co)"
    )
    SUPABASE_ANON_KEY: Optional[str] = Field(
        default=None,
        description="Public (anon) API key for the hosted service"
    )

    # OAuth
    OAUTH_PROVIDER: str = Field(
        default="google",
        description="Federated identity provider used for browser sign-in"
    )
    OAUTH_REDIRECT_URL: str = Field(
        default="strive://oauth-callback",
        description="Redirect URL registered with the hosted service"
    )
    OAUTH_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        description="Upper bound on the browser OAuth round trip"
    )

    # OTP
    PHONE_COUNTRY_CODE: str = Field(
        default="+91",
        description="Country code prefixed to bare mobile numbers for SMS"
    )

    # Hosted HTTP calls
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout for each hosted service request"
    )
    HTTP_MAX_RETRIES: int = Field(
        default=1,
        description="Retries for idempotent hosted calls on network errors"
    )

    # Session persistence
    SESSION_STORAGE_KEY: str = Field(
        default="sb-auth-token",
        description="Key-value store key holding the hosted session"
    )
    SESSION_EXPIRY_MARGIN_SECONDS: int = Field(
        default=10,
        description="Refresh the hosted session this many seconds before expiry"
    )

    # Local key-value store
    STORAGE_BACKEND: Literal["mongo", "memory"] = Field(
        default="mongo",
        description="Durable store for session markers"
    )
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="strive",
        description="MongoDB database name"
    )

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )

    @validator("OAUTH_TIMEOUT_SECONDS", "HTTP_TIMEOUT_SECONDS")
    def validate_positive_timeout(cls, v):
        """Timeouts must be positive."""
        if v <= 0:
            raise ValueError("timeout must be greater than zero")
        return v

    @validator("SUPABASE_URL")
    def strip_trailing_slash(cls, v):
        """Normalize base URL so paths can be appended directly."""
        return v.rstrip("/") if v else v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


# Global settings instance
settings = Settings()


def validate_settings(config: Optional[Settings] = None) -> bool:
    """
    Validates critical settings on application startup.
    Raises ConfigurationError listing every missing or invalid setting.
    """
    config = config or settings
    errors = []

    if not config.SUPABASE_URL:
        errors.append("SUPABASE_URL is required")
    elif not config.SUPABASE_URL.startswith(("http://", "https://")):
        errors.append("SUPABASE_URL must be an http(s) URL")

    if not config.SUPABASE_ANON_KEY:
        errors.append("SUPABASE_ANON_KEY is required")

    if not config.OAUTH_REDIRECT_URL:
        errors.append("OAUTH_REDIRECT_URL is required")

    # Production-specific validations
    if config.is_production and config.STORAGE_BACKEND == "memory":
        errors.append("STORAGE_BACKEND=memory is not allowed in production")

    if errors:
        raise ConfigurationError(
            f"Configuration validation failed: {', '.join(errors)}",
            details=errors
        )

    return True
