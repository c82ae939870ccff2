from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Open Web Conference API"
    app_version: str = "0.1.0"
    environment: str = "local"

    database_url: str = "sqlite+aiosqlite:///./openweb.db"
    redis_url: str | None = None
    log_json: bool = False

    cors_origins: list[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = False
    cors_allow_methods: list[str] = ["GET", "POST"]
    cors_allow_headers: list[str] = ["*"]
    frontend_origin: str = "http://localhost:3000"
    secure_cookies: bool = False
    trust_forwarded_for: bool = False

    captcha_enabled: bool = True
    turnstile_site_key: str = ""
    turnstile_secret_key: str = ""
    turnstile_theme: str = "auto"
    turnstile_verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
    turnstile_timeout_seconds: float = 8.0
    turnstile_expected_hostname: str | None = None

    rate_limit_window_seconds: int = 600
    rate_limit_max: int = 5
    rate_limit_key: str = "both"

    sentry_dsn: str | None = None
    sentry_traces_sample_rate: float = 0.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
