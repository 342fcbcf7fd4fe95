from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT Authentication
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Booking rules
    CANCELLATION_WINDOW_HOURS: int = 2
    MIN_SESSION_MINUTES: int = 15
    MAX_SESSION_MINUTES: int = 240
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # Store resilience
    STORE_RETRY_BACKOFF_SECONDS: float = 0.2
    REPUTATION_UPDATE_MAX_ATTEMPTS: int = 3

    # Optional override for the sweep script
    SWEEP_BATCH_LIMIT: Optional[int] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )


settings = Settings()
