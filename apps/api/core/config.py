"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    # DATABASE_URL wins when set (tests use sqlite://), otherwise the
    # URL is assembled from the POSTGRES_* parts.
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="shimms")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # JWT Authentication - REQUIRED for token signing
    SECRET_KEY: str = Field(
        default=...,
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Caching (Redis)
    CACHE_ENABLED: bool = Field(default=True)
    CACHE_TTL_DEFAULT: int = Field(default=300)  # 5 minutes

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")
    # Run tasks inline (tests / single-process dev)
    CELERY_TASK_ALWAYS_EAGER: bool = Field(default=False)

    # Email Configuration (Resend)
    EMAIL_ENABLED: bool = Field(default=False)
    RESEND_API_KEY: Optional[str] = Field(default=None)
    RESEND_API_URL: str = Field(default="https://api.resend.com/emails")
    EMAIL_REQUEST_TIMEOUT_S: int = Field(default=15)
    FROM_EMAIL: str = Field(default="onboarding@shimms.se")
    FROM_NAME: str = Field(default="SHIMMS")

    # AI analysis (OpenAI)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    AI_REQUEST_TIMEOUT_S: int = Field(default=60)
    AI_MAX_TOKENS: int = Field(default=1200)

    # Assessment lifecycle
    DRAFT_EXPIRY_HOURS: int = Field(default=168)  # 7 days
    ASSESSMENT_REMINDER_AFTER_HOURS: int = Field(default=72)
    CONSOLIDATION_BATCH_LIMIT: int = Field(default=25, ge=1, le=500)
    CONSOLIDATION_MAX_ATTEMPTS: int = Field(default=5, ge=1, le=50)

    # Invitations
    INVITATION_EXPIRY_DAYS: int = Field(default=7, ge=1, le=90)

    # Calendar reads are bounded (seconds)
    CALENDAR_FETCH_TIMEOUT_S: int = Field(default=15)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Web app base URL (invitation links point here)
    WEB_APP_BASE_URL: str = Field(default="http://localhost:3000")

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
