"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development: with no
ANTHROPIC_API_KEY and no delivery credentials the service still runs,
generating through the mock path and delivering in simulation mode.

Usage:
    from backend.app.core.config import settings
    print(settings.ANTHROPIC_MODEL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Hyper-Reach Crisis Communication Copilot"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Model provider ──
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: Optional[str] = None  # overrides the default model id
    LLM_MOCK: bool = False  # force the deterministic mock generator
    LLM_REQUEST_TIMEOUT: float = 60.0  # seconds, per attempt

    # ── Generation ──
    TRANSLATION_LANGUAGES: List[str] = ["es", "fr", "ar", "zh", "hi"]
    DISPLAY_TIMEZONE: str = "UTC"  # IANA zone for formatted_time

    # ── SMS delivery ──
    SMS_PROVIDER: str = "simulation"  # simulation | twilio
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    SMS_TO_NUMBER: Optional[str] = None

    # ── Email delivery ──
    EMAIL_PROVIDER: str = "simulation"  # simulation | smtp
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    EMAIL_FROM: Optional[str] = None
    EMAIL_TO: Optional[str] = None

    # ── Social posting ──
    SOCIAL_PROVIDER: str = "simulation"  # simulation | live
    TWITTER_BEARER_TOKEN: Optional[str] = None
    FACEBOOK_PAGE_ID: Optional[str] = None
    FACEBOOK_PAGE_ACCESS_TOKEN: Optional[str] = None

    # ── Delivery HTTP ──
    DELIVERY_TIMEOUT: float = 15.0  # seconds

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
