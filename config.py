"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

The three JWT kinds (access, refresh, password reset) each get their own
secret; AppSettings refuses to start in production when any two are equal.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "br3achbl0ckers"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional - without Redis the attempt ledger stays in process memory
    redis_uri: Optional[str] = None


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "br3achbl0ckers"
    jwt_audience: str = "br3achbl0ckers.api"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 604800
    password_reset_token_ttl_seconds: int = 3600
    cookie_secure: bool = True

    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    password_reset_secret: str = ""


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # "zeptomail" sends through the HTTP API, "log" only writes a log line
    email_provider: Literal["zeptomail", "log"] = "zeptomail"
    # "sync" fails the request when the mail cannot be sent
    email_dispatch_mode: Literal["sync", "background"] = "sync"

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@br3achbl0ckers.com"
    zepto_from_name: str = "Br3achBl0ckers"
    zepto_api_url: str = "https://api.zeptomail.in/v1.1/email"
    email_http_timeout_seconds: float = 10.0


class RateLimitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    login_max_attempts: int = 5
    login_window_seconds: int = 900
    ledger_max_age_seconds: int = 3600
    ledger_sweep_interval_seconds: int = 3600

    # flask-limiter style "N per period" strings
    registration_limit: str = "3 per hour"
    email_limit: str = "3 per 30 minutes"
    # keyed on the email alone
    otp_limit: str = "5 per 15 minutes"
    limits_storage_uri: str = "async+memory://"

    # peers whose forwarding headers are believed; empty means the socket
    # address is always the client
    trusted_proxies: list[str] = []

    password_reset_max_attempts: int = 3
    password_reset_lock_seconds: int = 86400


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "Br3achBl0ckers"
    frontend_url: str = "http://localhost:5173"

    cors_origins: list[str] = ["http://localhost:5173"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/api-docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    email: Optional[EmailSettings] = None
    rate_limit: Optional[RateLimitSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.rate_limit is None:
            self.rate_limit = RateLimitSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        if self.is_production:
            secrets = [
                self.jwt.jwt_secret,
                self.jwt.jwt_refresh_secret,
                self.jwt.password_reset_secret,
            ]
            if not all(secrets):
                raise ValueError(
                    "JWT_SECRET, JWT_REFRESH_SECRET and PASSWORD_RESET_SECRET must be set"
                )
            if len(set(secrets)) != len(secrets):
                raise ValueError("JWT signing secrets must be distinct")

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_development(self) -> bool:
        return self.env == "development"
