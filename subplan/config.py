"""
Application configuration using Pydantic Settings
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings loaded from environment variables
    """
    # Identity
    SUBSCRIPTION_ID_PREFIX: str = "sub"
    COST_ITEM_ID_PREFIX: str = "subcost"
    ID_LENGTH: int = 8
    SLUG_SUFFIX_LENGTH: int = 6

    # Defaults for new subscriptions
    DEFAULT_CATEGORY: str = "Other"
    DEFAULT_DESCRIPTION: str = "A new subscription."

    # Billing calendar (next billing date is computed in this timezone)
    TIMEZONE: str = "UTC"

    # Forecasting
    ARR_MONTHS: int = 12

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance (singleton)
    """
    return Settings()
