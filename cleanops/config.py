from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./cleanops.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "CleanOps Order Routing"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Routing
    DEFAULT_SORTING_WINDOW_HOURS: int = 6  # Used when a branch has no sorting window
    BATCH_MAX_WRITE_SIZE: int = 500  # Max member rows per bulk update chunk

    # Delivery classification thresholds (an order above any of these needs delivery)
    SMALL_ORDER_MAX_GARMENTS: int = 5
    SMALL_ORDER_MAX_WEIGHT_KG: float = 10.0
    SMALL_ORDER_MAX_VALUE: float = 5000.0
    CLASSIFICATION_OVERRIDE_MIN_REASON_LENGTH: int = 10

    # Driver assignment
    DRIVER_LOAD_WEIGHT: float = 1.0  # Score per active transfer batch

    # Uncollected order reminders
    REMINDER_BATCH_SIZE: int = 100  # Reminders fetched per sweep
    REMINDER_SEND_DELAY_MS: int = 500  # Pause between outbound messages (provider rate limit)
    REMINDER_SWEEP_DEADLINE_SECONDS: int = 300  # Hard stop for one sweep
    REMINDER_MAX_RETRIES: int = 3
    REMINDER_RETRY_DELAY_HOURS: int = 4
    REMINDER_MONTHLY_REPEAT_DAYS: int = 30
    REMINDER_JOB_HOUR: int = 9
    REMINDER_JOB_MINUTE: int = 0

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "Africa/Nairobi"

    # Messaging gateway (empty URL = log only)
    MESSAGING_WEBHOOK_URL: str = ""
    MESSAGING_API_KEY: str = ""
    MESSAGING_TIMEOUT_SECONDS: float = 10.0

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
