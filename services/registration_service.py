"""
Account registration and email verification by one-time code.

Challenge policy: the new challenge is committed first, then the notifier is
asked to deliver it. If delivery fails on resend, the previous challenge is
put back (only while ours is still the current one). Registration keeps its
challenge and reports a degraded success so the caller can offer a resend.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config import SecuritySettings
from errors import (
    AlreadyVerifiedError,
    DuplicateAccountError,
    NoChallengeError,
    NotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    ServiceUnavailableError,
)
from infrastructure.email.protocol import Notifier
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc, OtpChallenge
from shared.crypto import CredentialHasher, hash_token, tokens_match
from shared.datetime_utils import Clock, is_expired, utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import (
    normalize_email,
    normalize_role,
    validate_email,
    validate_name,
    validate_otp_format,
    validate_password,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    account: AccountDoc
    notification_sent: bool
    otp_expires_in: int


class RegistrationService:
    def __init__(
        self,
        repository: AccountRepository,
        notifier: Notifier,
        hasher: CredentialHasher,
        settings: SecuritySettings,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repository
        self._notifier = notifier
        self._hasher = hasher
        self._settings = settings
        self._clock = clock

    def _new_challenge(self) -> tuple[str, OtpChallenge]:
        code = generate_otp_code(self._settings.otp_length)
        challenge = OtpChallenge(
            code_hash=hash_token(code),
            expires_at=self._clock() + timedelta(seconds=self._settings.otp_ttl_seconds),
        )
        return code, challenge

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> RegistrationResult:
        name = validate_name(name)
        email = validate_email(email)
        password = validate_password(password)
        account_role = normalize_role(role)

        if await self._repo.find_by_email(email) is not None:
            log.warning("registration_failed", reason="duplicate_email")
            raise DuplicateAccountError("User with this email already exists", field="email")

        code, challenge = self._new_challenge()
        account = await self._repo.insert(
            AccountDoc(
                email=email,
                name=name,
                phone=(phone or "").strip() or None,
                password_hash=self._hasher.hash(password),
                role=account_role,
                is_verified=False,
                otp_challenge=challenge,
            )
        )
        log.info("account_registered", account_id=account.account_id, role=account.role)

        sent = await self._notifier.send_otp_email(account.email, account.name, code)
        if not sent:
            log.warning("otp_delivery_failed", account_id=account.account_id, stage="register")

        return RegistrationResult(
            account=account,
            notification_sent=sent,
            otp_expires_in=self._settings.otp_ttl_seconds,
        )

    async def verify_otp(self, email: str, code: str) -> AccountDoc:
        code = validate_otp_format(code, self._settings.otp_length)
        account = await self._repo.find_by_email(normalize_email(email))
        if account is None:
            raise NotFoundError("User not found")

        now = self._clock()

        def mutate(draft: AccountDoc) -> bool:
            if draft.is_verified:
                raise AlreadyVerifiedError("Email already verified")
            if draft.otp_challenge is None:
                raise NoChallengeError("No OTP found. Please request a new one.")
            if is_expired(draft.otp_challenge.expires_at, now):
                draft.otp_challenge = None
                return False
            if not tokens_match(code, draft.otp_challenge.code_hash):
                raise OtpMismatchError("Invalid OTP", field="otp")
            draft.is_verified = True
            draft.verified_at = now
            draft.otp_challenge = None
            return True

        try:
            updated, verified = await self._repo.modify(account.account_id, mutate)
        except OtpMismatchError:
            log.warning("otp_verification_failed", account_id=account.account_id, reason="mismatch")
            raise
        except (AlreadyVerifiedError, NoChallengeError) as e:
            log.warning(
                "otp_verification_failed", account_id=account.account_id, reason=e.error_code
            )
            raise

        if not verified:
            log.warning("otp_verification_failed", account_id=account.account_id, reason="expired")
            raise OtpExpiredError("OTP has expired. Please request a new one.")

        log.info("email_verified", account_id=account.account_id)
        return updated

    async def resend_otp(self, email: str) -> int:
        """Replace the live challenge and deliver the new code.

        Returns:
            Seconds until the new code expires.
        """
        account = await self._repo.find_by_email(normalize_email(email))
        if account is None:
            raise NotFoundError("User not found")

        code, challenge = self._new_challenge()

        def store(draft: AccountDoc) -> Optional[OtpChallenge]:
            if draft.is_verified:
                raise AlreadyVerifiedError("Email already verified")
            previous = draft.otp_challenge
            draft.otp_challenge = challenge
            return previous

        try:
            updated, previous = await self._repo.modify(account.account_id, store)
        except AlreadyVerifiedError:
            log.warning("otp_resend_failed", account_id=account.account_id, reason="already_verified")
            raise

        sent = await self._notifier.send_otp_email(
            updated.email, updated.name, code, is_resend=True
        )
        if not sent:
            await self._restore_challenge(account.account_id, challenge, previous)
            log.warning("otp_delivery_failed", account_id=account.account_id, stage="resend")
            raise ServiceUnavailableError("Failed to send OTP email. Please try again.")

        log.info("otp_resent", account_id=account.account_id)
        return self._settings.otp_ttl_seconds

    async def _restore_challenge(
        self,
        account_id: str,
        issued: OtpChallenge,
        previous: Optional[OtpChallenge],
    ) -> None:
        def restore(draft: AccountDoc) -> None:
            current = draft.otp_challenge
            if current is not None and current.code_hash == issued.code_hash:
                draft.otp_challenge = previous

        await self._repo.modify(account_id, restore)
