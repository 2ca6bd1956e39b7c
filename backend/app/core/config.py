"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "AutoServe CRM"
    app_version: str = "0.1.0"
    debug: bool = True
    environment: str = "development"

    # API
    api_v1_prefix: str = "/api"

    # Public URLs
    frontend_url: str = "http://localhost:5173"  # Customer-view links point here
    backend_url: str = "http://localhost:8000"  # Pixel and status callback URLs point here

    # Redis Cache
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    analytics_cache_ttl: int = 60  # seconds, 0 disables

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "autoserve"
    postgres_password: str = "autoserve_dev"
    postgres_db: str = "autoserve"

    # JWT Authentication
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440  # 24 hours

    # SMTP (Outbound Email)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_timeout: int = 30
    mail_from_email: str = "service@autoserve.local"
    mail_from_name: str = "AutoServe Service Center"

    # Twilio (SMS + WhatsApp)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    twilio_whatsapp_number: str = ""  # Falls back to twilio_phone_number
    twilio_base_url: str = "https://api.twilio.com/2010-04-01"
    twilio_timeout: int = 30
    twilio_validate_signatures: bool = False

    # Phone numbers without a country code are assumed domestic
    default_country_code: str = "+91"

    # Text generation via OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    message_model: str = "openai/gpt-4o-mini"
    openrouter_timeout: int = 60

    # Celery
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: str = "redis://localhost:6379/2"

    @property
    def redis_url(self) -> str:
        """Build Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    @property
    def postgres_url(self) -> str:
        """Build PostgreSQL async connection URL."""
        return f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    @property
    def whatsapp_sender(self) -> str:
        return self.twilio_whatsapp_number or self.twilio_phone_number

    def validate_production_settings(self) -> None:
        """
        Validate critical settings for production deployment.
        Raises ValueError if any critical settings are using default/insecure values.
        """
        if self.environment == "production":
            errors = []

            if self.jwt_secret_key == "your-secret-key-change-in-production":
                errors.append("JWT_SECRET_KEY must be changed from default value in production")

            if len(self.jwt_secret_key) < 32:
                errors.append("JWT_SECRET_KEY must be at least 32 characters long")

            if not self.postgres_password or self.postgres_password == "autoserve_dev":
                errors.append("POSTGRES_PASSWORD must be set to a secure value in production")

            if not self.twilio_account_sid or not self.twilio_auth_token:
                errors.append("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set in production")

            if not self.smtp_username or not self.smtp_password:
                errors.append("SMTP_USERNAME and SMTP_PASSWORD must be set in production")

            if errors:
                raise ValueError(
                    "Production configuration validation failed:\n" +
                    "\n".join(f"  - {error}" for error in errors)
                )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
