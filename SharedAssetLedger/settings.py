"""Settings management and logging setup."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment (LEDGER_*) or .env."""

    log_level: str = "INFO"
    currency_symbol: str = "$"

    # Used when an item payload carries no depreciation period at all
    default_depreciation_days: int = 365 * 3
    expiry_warning_days: int = 30

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
