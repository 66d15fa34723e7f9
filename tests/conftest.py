"""
Shared fixtures.

Services are wired around the in-process repository, a controllable clock,
a notifier that records what it would have sent, and argon2 parameters
small enough to keep the suite fast.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import (
    AdminSettings,
    AppSettings,
    JWTSettings,
    OAuthProviderSettings,
    SecuritySettings,
    SentrySettings,
)
from repositories.memory import InMemoryAccountRepository
from schemas.models.account import AccountDoc, Role
from services.federation_service import FederationService
from services.login_service import LoginService
from services.password_reset_service import PasswordResetService
from services.registration_service import RegistrationService
from services.token_service import TokenService
from shared.crypto import CredentialHasher

TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes!!"
RESET_URL_BASE = "http://localhost:3000/reset-password"
PASSWORD = "secret1"


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Notifier double; set ``fail = True`` to simulate a delivery failure."""

    def __init__(self) -> None:
        self.fail = False
        self.otp_messages: list[dict] = []
        self.reset_messages: list[dict] = []

    async def send_otp_email(self, email, user_name, otp_code, *, is_resend=False) -> bool:
        self.otp_messages.append(
            {"email": email, "name": user_name, "code": otp_code, "is_resend": is_resend}
        )
        return not self.fail

    async def send_password_reset_email(self, email, user_name, reset_url) -> bool:
        self.reset_messages.append({"email": email, "name": user_name, "url": reset_url})
        return not self.fail

    @property
    def last_code(self) -> str:
        return self.otp_messages[-1]["code"]

    @property
    def last_reset_token(self) -> str:
        return urlparse(self.reset_messages[-1]["url"]).path.rsplit("/", 1)[-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def security_settings():
    return SecuritySettings(
        argon2_time_cost=1, argon2_memory_cost=8, argon2_parallelism=1
    )


@pytest.fixture
def jwt_settings():
    return JWTSettings(
        jwt_secret=TEST_JWT_SECRET, jwt_private_key="", jwt_public_key=""
    )


@pytest.fixture
def hasher(security_settings):
    return CredentialHasher.from_settings(security_settings)


@pytest.fixture
def repo(clock):
    return InMemoryAccountRepository(clock=clock)


@pytest.fixture
def token_service(jwt_settings, repo, clock):
    return TokenService(jwt_settings, repo, clock=clock)


@pytest.fixture
def login_service(repo, token_service, hasher, security_settings, clock):
    return LoginService(repo, token_service, hasher, security_settings, clock=clock)


@pytest.fixture
def registration_service(repo, notifier, hasher, security_settings, clock):
    return RegistrationService(repo, notifier, hasher, security_settings, clock=clock)


@pytest.fixture
def reset_service(repo, notifier, hasher, security_settings, clock):
    return PasswordResetService(
        repo, notifier, hasher, security_settings, RESET_URL_BASE, clock=clock
    )


@pytest.fixture
def federation_service(repo, token_service, clock):
    return FederationService(repo, token_service, clock=clock)


@pytest.fixture
def make_account(repo, hasher):
    """Insert an account directly; verified with password ``secret1`` by default."""

    async def _make(
        email: str = "ada@x.com",
        *,
        name: str = "Ada",
        password: Optional[str] = PASSWORD,
        role: Role = Role.PATIENT,
        is_verified: bool = True,
        **fields,
    ) -> AccountDoc:
        return await repo.insert(
            AccountDoc(
                email=email,
                name=name,
                password_hash=hasher.hash(password) if password else None,
                role=role,
                is_verified=is_verified,
                **fields,
            )
        )

    return _make


# ── Application ──────────────────────────────────────────────────────────────


@pytest.fixture
def app_settings(jwt_settings, security_settings):
    return AppSettings(
        env="test",
        secret_key="test-session-secret",
        frontend_url="http://localhost:3000",
        jwt=jwt_settings,
        security=security_settings,
        oauth=OAuthProviderSettings(
            google_oauth_client_id="", google_oauth_client_secret=""
        ),
        sentry=SentrySettings(sentry_dsn=""),
        admin=AdminSettings(admin_email="", admin_password=""),
    )


@pytest.fixture
def app(app_settings, repo, notifier, clock):
    return create_app(
        app_settings, account_repository=repo, notifier=notifier, clock=clock
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
