"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo import AsyncMongoClient
from starlette.middleware.sessions import SessionMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.protocol import Notifier
from infrastructure.email.zeptomail import ZeptoMailNotifier
from infrastructure.http_client import HttpClient
from infrastructure.oauth_clients import init_oauth
from repositories.account_repository import MongoAccountRepository
from repositories.memory import InMemoryAccountRepository
from repositories.protocol import AccountRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.oauth_routes import router as oauth_router
from services.admin_service import seed_admin
from services.federation_service import FederationService
from services.login_service import LoginService
from services.password_reset_service import PasswordResetService
from services.registration_service import RegistrationService
from services.token_service import TokenService
from shared.crypto import CredentialHasher
from shared.datetime_utils import Clock, utcnow
from shared.generators import generate_secure_token
from shared.log_context import setup_logging_middleware
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_services(
    app: FastAPI,
    settings: AppSettings,
    repository: AccountRepository,
    notifier: Notifier,
    clock: Clock,
) -> None:
    """Wire the auth services onto app.state around *repository* and *notifier*."""
    hasher = CredentialHasher.from_settings(settings.security)
    token_service = TokenService(settings.jwt, repository, clock=clock)

    app.state.account_repository = repository
    app.state.notifier = notifier
    app.state.token_service = token_service
    app.state.login_service = LoginService(
        repository, token_service, hasher, settings.security, clock=clock
    )
    app.state.registration_service = RegistrationService(
        repository, notifier, hasher, settings.security, clock=clock
    )
    app.state.password_reset_service = PasswordResetService(
        repository,
        notifier,
        hasher,
        settings.security,
        settings.reset_password_url,
        clock=clock,
    )
    app.state.federation_service = FederationService(
        repository, token_service, clock=clock
    )


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    account_repository: Optional[AccountRepository] = None,
    notifier: Optional[Notifier] = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """Create and return a fully configured FastAPI application.

    ``account_repository`` and ``notifier`` replace the MongoDB store and the
    ZeptoMail client (tests, local tooling).
    """
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    setup_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: Optional[AsyncMongoClient] = None
        email_http: Optional[HttpClient] = None

        repository = account_repository
        if repository is None:
            if settings.db.mongodb_uri:
                mongo_client = AsyncMongoClient(settings.db.mongodb_uri, tz_aware=True)
                mongo_repo = MongoAccountRepository(
                    mongo_client[settings.db.db_name],
                    max_retries=settings.db.account_update_max_retries,
                    clock=clock,
                )
                await mongo_repo.ensure_indexes()
                repository = mongo_repo
            else:
                log.warning("account_store_memory_mode", reason="MONGODB_URI not set")
                repository = InMemoryAccountRepository(clock=clock)

        app_notifier = notifier
        if app_notifier is None:
            email_http = HttpClient(timeout=settings.email.email_timeout_seconds)
            app_notifier = ZeptoMailNotifier(
                settings.email,
                email_http,
                app_name=settings.app_name,
                otp_ttl_minutes=settings.security.otp_ttl_seconds // 60,
                reset_ttl_minutes=settings.security.reset_token_ttl_seconds // 60,
            )

        build_services(app, settings, repository, app_notifier, clock)
        await seed_admin(
            repository,
            CredentialHasher.from_settings(settings.security),
            settings.admin,
            clock=clock,
        )
        log.info("app_started", env=settings.env)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if email_http is not None:
            await email_http.aclose()
        if mongo_client is not None:
            await mongo_client.close()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    oauth, providers = init_oauth(settings.oauth)
    app.state.oauth = oauth
    app.state.oauth_providers = providers

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    session_secret = settings.secret_key
    if not session_secret:
        if settings.is_production:
            raise RuntimeError("SECRET_KEY must be set in production")
        log.warning("session_secret_generated", reason="SECRET_KEY not set")
        session_secret = generate_secure_token()

    # Holds the OAuth state between /auth/google and its callback
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        https_only=settings.is_production,
        same_site="lax",
    )
    setup_logging_middleware(app, hash_ips=settings.is_production)

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(oauth_router)

    return app
