"""Application configuration."""

import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden with environment variables.
    """

    # API
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Huddle"

    # Critical settings (must be provided)
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Connection pool
    POOL_SIZE: int = 10
    MAX_OVERFLOW: int = 20
    POOL_RECYCLE: int = 3600  # 1 hour
    POOL_TIMEOUT: int = 30
    POOL_PRE_PING: bool = True
    SQL_ECHO: bool = False

    # JWT
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Invitations
    INVITE_BASE_URL: str = "http://localhost:3000"
    INVITATION_TOKEN_BYTES: int = 24

    # Messages
    MESSAGE_PAGE_SIZE: int = 50
    MAX_MESSAGE_PAGE_SIZE: int = 100

    # Change feed relay (RabbitMQ)
    FEED_RELAY_ENABLED: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    FEED_EXCHANGE: str = "huddle.changes"

    # Client re-subscription
    RESUBSCRIBE_MAX_ATTEMPTS: int = 3
    RESUBSCRIBE_BASE_DELAY: float = 1.0

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_CONFIG: str = ""

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables
    )

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)

        # Validate critical settings
        critical_settings = [
            ("JWT_SECRET_KEY", self.JWT_SECRET_KEY),
            ("DATABASE_URL", self.DATABASE_URL),
        ]

        missing_settings = [name for name, value in critical_settings if not value]
        if missing_settings:
            raise ValueError(
                f"Critical settings missing: {', '.join(missing_settings)}"
            )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings()
