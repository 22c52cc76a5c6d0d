"""Configuration settings using Pydantic with environment variables."""
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import (
    AppConfig,
    LoopConfig,
    MAX_POLL_MINUTES,
    MIN_POLL_MINUTES,
    NotificationConfig,
    SessionConfig,
)

VALID_LOG_LEVELS = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}


class Settings(BaseSettings):
    """Application settings with environment variable loading and validation."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore',
    )

    DISCORD_TOKEN: Optional[str] = Field(
        None,
        description="Discord bot token used to post alerts to channels"
    )
    NTFY_TOPIC: Optional[str] = Field(
        None,
        description="ntfy.sh topic for push notifications"
    )
    NOTIFICATIONS_ENABLED: bool = Field(
        True,
        description="Send alerts; when false, watches still run and log availability"
    )
    DATABASE_PATH: str = Field(
        "data/watches.db",
        description="SQLite file holding persisted watches"
    )
    HEADLESS: bool = Field(
        True,
        description="Run browser in headless mode"
    )
    DEFAULT_POLL_MINUTES: int = Field(
        5,
        description="Check interval used when a watch does not specify one"
    )
    SETTLE_DELAY: float = Field(
        1.0,
        description="Seconds to wait after page load before fetching resale data"
    )
    NAVIGATION_TIMEOUT: float = Field(
        30.0,
        description="Seconds before a page navigation is abandoned"
    )
    STOP_TIMEOUT: float = Field(
        5.0,
        description="Seconds to wait for a watch to shut down before aborting it"
    )
    MAX_RETRIES: int = Field(
        3,
        description="Maximum number of attempts per notification"
    )
    RETRY_DELAY: int = Field(
        5,
        description="Initial delay between notification retries in seconds"
    )
    LOG_LEVEL: str = Field(
        "INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @field_validator('DEFAULT_POLL_MINUTES')
    @classmethod
    def validate_poll_minutes(cls, v):
        """Keep the default interval within the allowed range."""
        if not MIN_POLL_MINUTES <= v <= MAX_POLL_MINUTES:
            raise ValueError(
                f'DEFAULT_POLL_MINUTES must be between {MIN_POLL_MINUTES} and {MAX_POLL_MINUTES}'
            )
        return v

    @field_validator('SETTLE_DELAY', 'NAVIGATION_TIMEOUT', 'STOP_TIMEOUT')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('timeouts and delays must not be negative')
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate LOG_LEVEL is a valid logging level."""
        if v.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f'LOG_LEVEL must be one of {VALID_LOG_LEVELS}')
        return v.upper()


def load_config(env_file: Optional[Path] = None) -> AppConfig:
    """Load configuration from environment variables and an optional .env file."""
    load_dotenv(dotenv_path=env_file or Path('.') / '.env')
    settings = Settings()

    return AppConfig(
        database_path=settings.DATABASE_PATH,
        default_poll_minutes=settings.DEFAULT_POLL_MINUTES,
        log_level=settings.LOG_LEVEL,
        session=SessionConfig(headless=settings.HEADLESS),
        loop=LoopConfig(
            settle_delay=settings.SETTLE_DELAY,
            navigation_timeout=settings.NAVIGATION_TIMEOUT,
            stop_timeout=settings.STOP_TIMEOUT,
        ),
        notification=NotificationConfig(
            enabled=settings.NOTIFICATIONS_ENABLED,
            discord_token=settings.DISCORD_TOKEN,
            ntfy_topic=settings.NTFY_TOPIC,
            retry_attempts=settings.MAX_RETRIES,
            retry_delay=settings.RETRY_DELAY,
        ),
    )
