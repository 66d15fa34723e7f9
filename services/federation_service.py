"""
Sign-in through an external identity provider.

Each path ends in exactly one single-record write (insert of a new account,
or one ``modify`` of an existing one) that also stores the session digest,
so a failure leaves nothing behind.
"""

from __future__ import annotations

from typing import Any

from bson import ObjectId

from errors import AppError, FederationFailedError
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc, ExternalIdentity, Role
from services.login_service import LoginResult
from services.token_service import TokenService
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)


class FederationService:
    def __init__(
        self,
        repository: AccountRepository,
        token_service: TokenService,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repository
        self._tokens = token_service
        self._clock = clock

    async def login_with_external_identity(
        self, provider: str, subject: str, profile: dict[str, Any]
    ) -> LoginResult:
        """Resolve (or create) the account for *provider*/*subject* and open a session.

        ``profile`` carries ``email``, ``name`` and ``email_verified`` as asserted
        by the provider. Any failure is reported as FederationFailedError.
        """
        try:
            return await self._login(provider, subject, profile)
        except FederationFailedError:
            raise
        except AppError as e:
            log.warning(
                "federation_failed", provider=provider, reason=e.error_code
            )
            raise FederationFailedError("Federated sign-in failed") from e
        except Exception as e:
            log.error(
                "federation_failed",
                provider=provider,
                reason="unexpected",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            raise FederationFailedError("Federated sign-in failed") from e

    async def _login(
        self, provider: str, subject: str, profile: dict[str, Any]
    ) -> LoginResult:
        email = normalize_email(profile.get("email"))
        if not subject or not email:
            log.warning("federation_failed", provider=provider, reason="incomplete_profile")
            raise FederationFailedError("Identity provider did not return an email")

        now = self._clock()

        account = await self._repo.find_by_external_identity(provider, subject)
        if account is not None:
            tokens = self._tokens.issue(account.account_id, account.role)

            def open_session(draft: AccountDoc) -> None:
                draft.refresh_token_hash = tokens.refresh_token_hash
                draft.last_login_at = now

            updated, _ = await self._repo.modify(account.account_id, open_session)
            log.info("login_success", account_id=account.account_id, auth_method=provider)
            return LoginResult(tokens=tokens, account=updated)

        existing = await self._repo.find_by_email(email)
        if existing is not None:
            if not profile.get("email_verified"):
                log.warning(
                    "federation_failed",
                    provider=provider,
                    reason="unverified_email_for_existing_account",
                    account_id=existing.account_id,
                )
                raise FederationFailedError(
                    "An account with this email already exists"
                )
            if existing.external_identity is not None:
                log.warning(
                    "federation_failed",
                    provider=provider,
                    reason="account_linked_elsewhere",
                    account_id=existing.account_id,
                )
                raise FederationFailedError(
                    "This account is already linked to another identity"
                )

            tokens = self._tokens.issue(existing.account_id, existing.role)
            identity = ExternalIdentity(provider=provider, subject=subject, linked_at=now)

            def link(draft: AccountDoc) -> None:
                if draft.external_identity is not None:
                    raise FederationFailedError(
                        "This account is already linked to another identity"
                    )
                draft.external_identity = identity
                if not draft.is_verified:
                    draft.is_verified = True
                    draft.verified_at = now
                    draft.otp_challenge = None
                draft.refresh_token_hash = tokens.refresh_token_hash
                draft.last_login_at = now

            updated, _ = await self._repo.modify(existing.account_id, link)
            log.info(
                "external_identity_linked",
                account_id=existing.account_id,
                provider=provider,
            )
            return LoginResult(tokens=tokens, account=updated)

        account_id = ObjectId()
        tokens = self._tokens.issue(str(account_id), Role.PATIENT.value)
        created = await self._repo.insert(
            AccountDoc(
                _id=account_id,
                email=email,
                name=(profile.get("name") or email.split("@")[0]).strip(),
                role=Role.PATIENT,
                is_verified=True,
                verified_at=now,
                external_identity=ExternalIdentity(
                    provider=provider, subject=subject, linked_at=now
                ),
                refresh_token_hash=tokens.refresh_token_hash,
                last_login_at=now,
            )
        )
        log.info(
            "federated_account_created",
            account_id=created.account_id,
            provider=provider,
        )
        return LoginResult(tokens=tokens, account=created)
