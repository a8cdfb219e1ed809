"""Configuration management for the draft engine with safe test defaults."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment types."""
    TEST = "TEST"
    DEV = "DEV"
    PROD = "PROD"


class AppSettings(BaseSettings):
    """Application settings with safe test defaults and dotenv support.

    Environment variables can be set directly or via .env file.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        env_nested_delimiter='__',
        case_sensitive=False,
        extra='ignore'
    )

    # ===================
    # Environment
    # ===================
    ENV: Environment = Field(
        default=Environment.TEST,
        description='Application environment: TEST, DEV, or PROD'
    )

    # ===================
    # Database
    # ===================
    DB_URI: str = Field(
        default='sqlite+aiosqlite:///:memory:',
        description='Async database connection URI. Safe default for tests.'
    )
    DB_ECHO: bool = Field(default=False, description='Echo SQL statements')
    DB_POOL_SIZE: int = Field(default=10, description='Database connection pool size')
    DB_MAX_OVERFLOW: int = Field(default=20, description='Maximum pool overflow')

    # ===================
    # Draft clock
    # ===================
    PICK_TIME_LIMIT_S: int = Field(
        default=90,
        gt=0,
        description='Default per-pick time limit when a session does not set one'
    )
    TICK_INTERVAL_S: float = Field(
        default=5.0,
        description='Seconds between timer sync broadcasts (clients interpolate)'
    )
    RESTART_DELAY_S: float = Field(
        default=0.1,
        description='Pause before arming the next turn so pick events land first'
    )

    # ===================
    # Auto-pick retry & circuit breaker
    # ===================
    AUTO_PICK_MAX_ATTEMPTS: int = Field(default=3, description='Attempts per auto-pick')
    RETRY_BACKOFF_BASE_S: float = Field(default=0.1, description='First retry delay')
    RETRY_BACKOFF_MAX_S: float = Field(default=2.0, description='Retry delay ceiling')
    CIRCUIT_BREAKER_THRESHOLD: int = Field(
        default=3,
        description='Consecutive auto-pick failures before manual pick is required'
    )

    # ===================
    # Broadcast gateway
    # ===================
    BROADCAST_GATEWAY_URL: Optional[str] = Field(
        default=None,
        description='Pub/sub gateway endpoint; in-process broadcaster when unset'
    )
    BROADCAST_TIMEOUT_S: float = Field(default=5.0, description='Gateway request timeout')

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = Field(default='INFO', description='Logging level')
    LOG_FORMAT: str = Field(default='json', description='Log format: json, text, or structured')

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ('json', 'text', 'structured'):
            raise ValueError("LOG_FORMAT must be one of: json, text, structured")
        return v_lower

    @field_validator('ENV', mode='before')
    @classmethod
    def validate_env(cls, v) -> Environment:
        """Validate and normalize environment value."""
        if isinstance(v, Environment):
            return v
        if isinstance(v, str):
            v_upper = v.upper()
            if v_upper in ('TEST', 'TESTING'):
                return Environment.TEST
            elif v_upper in ('DEV', 'DEVELOPMENT', 'LOCAL'):
                return Environment.DEV
            elif v_upper in ('PROD', 'PRODUCTION'):
                return Environment.PROD
        raise ValueError(f"ENV must be TEST, DEV, or PROD (got: {v})")

    def is_test(self) -> bool:
        """Check if running in test environment."""
        return self.ENV == Environment.TEST

    def get_database_url(self) -> str:
        """Get the database connection URL."""
        return self.DB_URI


@lru_cache()
def get_settings() -> AppSettings:
    """Get cached application settings.

    Loads settings from:
    1. Environment variables
    2. .env file (if exists)
    3. Default values

    Returns:
        AppSettings: Cached settings instance
    """
    return AppSettings()
