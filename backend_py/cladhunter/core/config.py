from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_host: str = "0.0.0.0"
    app_port: int = 8081
    log_level: str = "INFO"

    # sqlite for local dev; postgresql+psycopg://... in production
    database_url: str = "sqlite:///./cladhunter.db"
    # "sql" (SQLAlchemy) or "memory" (single process, data lost on restart)
    store_backend: str = "sql"
    # Extra attempts for idempotent store reads when the database is briefly unavailable.
    store_retry_attempts: int = 2

    jwt_secret: str = "change_me"
    jwt_expires_sec: int = 60 * 60 * 24 * 30

    # Anonymous clients send this key as bearer token plus X-User-ID: anon_<device id>.
    public_anon_key: str = ""

    # Telegram WebApp login (optional). Without a token /api/auth/telegram is disabled.
    tg_bot_token: str = ""
    tg_auth_max_age_sec: int = 86400

    # Economy
    base_ad_reward: int = 10
    ad_cooldown_seconds: int = 30
    daily_view_limit: int = 200

    # Wallet that receives boost payments; returned to the client with each order.
    ton_merchant_address: str = "UQD_merchant_address_placeholder"
    # "manual" trusts any confirmation; "tonapi" looks the payment up on chain.
    payment_verifier: str = "manual"
    tonapi_key: str = ""
    tonapi_url: str = "https://tonapi.io"

    # JSON list of partner channels. Empty = built-in defaults.
    partners_file: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
