"""Application configuration via pydantic-settings.

Reads from a .env file or environment variables and validates them at
startup, so a mistyped value fails fast with a clear error message.

Usage:
    from middleman_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Middleman Escrow coordinator."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://middleman:middleman_dev"
        "@localhost:5432/middleman_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_statement_timeout_seconds: float = 10.0
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = 86400  # 24 hours

    # --- Email (Brevo transactional API) ---
    # Leave brevo_api_key empty to log emails instead of sending them.
    brevo_api_key: str = ""
    brevo_api_url: str = "https://api.brevo.com/v3/smtp/email"
    email_sender_name: str = "Legit Prove Middleman Service"
    email_sender_address: str = "no-reply@legitprove.com"
    email_timeout_seconds: float = 10.0
    email_max_attempts: int = 3

    # --- Market data (CoinGecko) ---
    coingecko_markets_url: str = "https://api.coingecko.com/api/v3/coins/markets"
    crypto_listing_size: int = 10
    market_data_timeout_seconds: float = 10.0
    market_data_max_attempts: int = 3

    # --- Links embedded in emails ---
    public_base_url: str = "http://localhost:3000"
    cors_allowed_origins: list[str] = ["*"]

    # --- Escrow Rules ---
    confirmation_code_ttl_minutes: int = 10
    stale_request_days: int = 7

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def email_simulated(self) -> bool:
        """True when no Brevo key is configured and emails are only logged."""
        return not self.brevo_api_key

    @property
    def confirmation_code_ttl(self) -> timedelta:
        return timedelta(minutes=self.confirmation_code_ttl_minutes)

    @property
    def stale_request_age(self) -> timedelta:
        return timedelta(days=self.stale_request_days)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
