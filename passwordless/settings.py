from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    app_env: str = "dev"
    log_level: str = "INFO"
    request_timeout_seconds: float = 5.0

    # Login policy (0 / "" fall back to the built-in defaults)
    code_length: int = 6
    code_charset: str = "0123456789"
    token_ttl_seconds: int = 900
    max_failed_attempts: int = 3

    # Token store
    store_backend: Literal["memory", "file", "postgres", "redis"] = "memory"
    file_store_dir: str = "var/tokens"
    database_url: str = "postgresql://app:app@db:5432/app"
    token_table: str = "login_tokens"
    redis_url: str = "redis://redis:6379/0"
    redis_key_prefix: str = "plt:"

    # Transport
    transport: Literal["log", "http_smtp"] = "log"
    smtp_base_url: str = "http://smtp-mock:8025"
    email_subject: str = "Your login code"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
