"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).
AppSettings populates every sub-config from the same source so a single
``AppSettings()`` call is enough to boot the service.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Without it the service runs on the in-process account store
    mongodb_uri: Optional[str] = None
    db_name: str = "myhealthlink"
    account_update_max_retries: int = 5


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "myhealthlink"
    jwt_audience: str = "myhealthlink.api"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 2592000

    # RS256 keys (preferred)
    jwt_private_key: str = ""
    jwt_public_key: str = ""

    # HS256 fallback (used when RS256 keys are absent)
    jwt_secret: str = ""

    # Issue a new refresh token on every /auth/refresh exchange
    rotate_refresh_tokens: bool = False

    @property
    def use_rs256(self) -> bool:
        return bool(self.jwt_private_key and self.jwt_public_key)


class SecuritySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    max_failed_logins: int = 5
    lock_duration_seconds: int = 900

    otp_length: int = 6
    otp_ttl_seconds: int = 600
    reset_token_ttl_seconds: int = 900

    # argon2id work factor
    argon2_time_cost: int = 3
    argon2_memory_cost: int = 65536
    argon2_parallelism: int = 4


class OAuthProviderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    google_oauth_client_id: str = ""
    google_oauth_client_secret: str = ""
    google_oauth_redirect_uri: str = ""


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "no-reply@myhealthlink.app"
    zepto_from_name: str = "MyHealthLink"
    email_timeout_seconds: float = 10.0


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


class AdminSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Seeded at startup when both are set
    admin_email: str = ""
    admin_password: str = ""
    admin_name: str = "Super Admin"

    @property
    def seed_enabled(self) -> bool:
        return bool(self.admin_email and self.admin_password)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    secret_key: str = ""
    session_secret: str = ""  # alias kept for older deployments
    env: str = "development"
    app_name: str = "MyHealthLink"
    frontend_url: str = "http://localhost:3000"
    docs_url: Optional[str] = "/docs"

    cors_origins: list[str] = ["http://localhost:3000"]

    db: Optional[DatabaseSettings] = None
    jwt: Optional[JWTSettings] = None
    security: Optional[SecuritySettings] = None
    oauth: Optional[OAuthProviderSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None
    admin: Optional[AdminSettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs_and_secret(self) -> "AppSettings":
        # Accept SESSION_SECRET as a fallback for SECRET_KEY
        if not self.secret_key and self.session_secret:
            self.secret_key = self.session_secret

        if self.db is None:
            self.db = DatabaseSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.security is None:
            self.security = SecuritySettings()
        if self.oauth is None:
            self.oauth = OAuthProviderSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()
        if self.admin is None:
            self.admin = AdminSettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def reset_password_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/reset-password"
