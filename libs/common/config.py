from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "UTC"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Attempts for a unit of work that lost an optimistic-concurrency race
    TXN_MAX_ATTEMPTS: int = 3

    # Background jobs
    REDIS_URL: str = "redis://localhost:6379/0"

    # Payment gateway
    PAYMENT_GATEWAY_URL: str = "http://localhost:9100"
    PAYMENT_GATEWAY_API_KEY: Optional[str] = None
    PAYMENT_GATEWAY_TIMEOUT: float = 30.0

    # Loyalty
    LOYALTY_AMOUNT_PER_POINT: int = 1000
    LOYALTY_POINTS_EXPIRY_DAYS: int = 365
    LOYALTY_APPLY_TIER_MULTIPLIER: bool = True
    TIER_RECOMPUTE_BACKEND: Literal["task", "arq", "disabled"] = "task"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
