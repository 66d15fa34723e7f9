"""Unit tests for AppSettings and sub-configs."""

import pytest

from config import (
    AdminSettings,
    AppSettings,
    DatabaseSettings,
    EmailSettings,
    JWTSettings,
    SecuritySettings,
)


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_mongodb_uri_optional(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        assert DatabaseSettings().mongodb_uri is None

    def test_loads_mongodb_uri(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DB_NAME", raising=False)
        settings = DatabaseSettings()
        assert settings.db_name == "myhealthlink"
        assert settings.account_update_max_retries == 5


# ---------------------------------------------------------------------------
# JWTSettings
# ---------------------------------------------------------------------------


class TestJWTSettings:
    def test_lifetimes(self):
        settings = JWTSettings()
        assert settings.access_token_ttl_seconds == 900
        assert settings.refresh_token_ttl_seconds == 30 * 24 * 3600

    def test_rotation_off_by_default(self, monkeypatch):
        monkeypatch.delenv("ROTATE_REFRESH_TOKENS", raising=False)
        assert JWTSettings().rotate_refresh_tokens is False

    def test_rotation_from_env(self, monkeypatch):
        monkeypatch.setenv("ROTATE_REFRESH_TOKENS", "true")
        assert JWTSettings().rotate_refresh_tokens is True

    def test_use_rs256_requires_both_keys(self, monkeypatch):
        monkeypatch.delenv("JWT_PRIVATE_KEY", raising=False)
        monkeypatch.delenv("JWT_PUBLIC_KEY", raising=False)
        assert JWTSettings().use_rs256 is False
        assert JWTSettings(jwt_private_key="priv").use_rs256 is False
        assert JWTSettings(jwt_private_key="priv", jwt_public_key="pub").use_rs256 is True


# ---------------------------------------------------------------------------
# SecuritySettings / EmailSettings
# ---------------------------------------------------------------------------


class TestSecuritySettings:
    def test_lockout_and_challenge_defaults(self):
        settings = SecuritySettings()
        assert settings.max_failed_logins == 5
        assert settings.lock_duration_seconds == 900
        assert settings.otp_length == 6
        assert settings.otp_ttl_seconds == 600
        assert settings.reset_token_ttl_seconds == 900

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MAX_FAILED_LOGINS", "3")
        assert SecuritySettings().max_failed_logins == 3


class TestEmailSettings:
    def test_token_loaded(self, monkeypatch):
        monkeypatch.setenv("ZEPTO_API_TOKEN", "zepto-abc")
        assert EmailSettings().zepto_api_token == "zepto-abc"


class TestAdminSettings:
    def test_seed_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("ADMIN_EMAIL", raising=False)
        monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
        assert AdminSettings().seed_enabled is False

    def test_seed_enabled_from_env(self, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAIL", "root@x.com")
        monkeypatch.setenv("ADMIN_PASSWORD", "admin-pass-1")
        settings = AppSettings()
        assert settings.admin.seed_enabled is True
        assert settings.admin.admin_name == "Super Admin"


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


class TestAppSettings:
    def test_sub_configs_populated(self):
        settings = AppSettings()
        assert isinstance(settings.db, DatabaseSettings)
        assert isinstance(settings.jwt, JWTSettings)
        assert isinstance(settings.security, SecuritySettings)
        assert settings.oauth is not None
        assert settings.email is not None
        assert settings.logging is not None
        assert settings.sentry is not None

    def test_explicit_sub_config_kept(self):
        jwt = JWTSettings(jwt_secret="x" * 32)
        assert AppSettings(jwt=jwt).jwt is jwt

    def test_session_secret_fallback(self, monkeypatch):
        monkeypatch.delenv("SECRET_KEY", raising=False)
        monkeypatch.setenv("SESSION_SECRET", "legacy-secret")
        assert AppSettings().secret_key == "legacy-secret"

    def test_secret_key_wins_over_session_secret(self, monkeypatch):
        monkeypatch.setenv("SECRET_KEY", "primary")
        monkeypatch.setenv("SESSION_SECRET", "legacy-secret")
        assert AppSettings().secret_key == "primary"

    @pytest.mark.parametrize(
        "env, expected", [("production", True), ("development", False)]
    )
    def test_is_production(self, env, expected):
        assert AppSettings(env=env).is_production is expected

    @pytest.mark.parametrize(
        "frontend, expected",
        [
            ("http://localhost:3000", "http://localhost:3000/reset-password"),
            ("https://app.example.com/", "https://app.example.com/reset-password"),
        ],
    )
    def test_reset_password_url(self, frontend, expected):
        assert AppSettings(frontend_url=frontend).reset_password_url == expected
