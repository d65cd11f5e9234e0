"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PayPal Configuration
    paypal_api_url: str = Field(
        default="https://api-m.sandbox.paypal.com", description="PayPal REST API base URL"
    )
    paypal_client_id: str = Field(..., description="PayPal REST client ID")
    paypal_client_secret: str = Field(..., description="PayPal REST client secret")

    # Object storage (Cloudinary) Configuration
    cloudinary_cloud_name: str = Field(..., description="Cloudinary cloud name")
    cloudinary_api_key: str = Field(..., description="Cloudinary API key")
    cloudinary_api_secret: str = Field(..., description="Cloudinary API secret")
    cloudinary_upload_folder: str = Field(
        default="asset-marketplace", description="Folder that signed uploads land in"
    )

    # Identity provider session tokens
    auth_secret_key: str = Field(..., min_length=8, description="Session token signing secret")
    auth_algorithm: str = Field(default="HS256", description="Session token algorithm")
    session_cookie_name: str = Field(
        default="session_token", description="Cookie carrying the session token"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL (async driver)")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="asset-marketplace", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    app_url: str = Field(
        default="http://localhost:3000", description="Public URL used in gateway redirects"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)"
    )

    # Purchase pricing (fixed for every asset)
    purchase_price_cents: int = Field(default=500, gt=0, description="Asset price in minor units")
    purchase_currency: str = Field(default="USD", description="Currency of the asset price")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("paypal_api_url", "app_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL without a trailing slash."""
        if not v.startswith(("https://", "http://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("purchase_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a 3-letter code")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_sandbox(self) -> bool:
        """Check if talking to the PayPal sandbox."""
        return "sandbox" in self.paypal_api_url


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
