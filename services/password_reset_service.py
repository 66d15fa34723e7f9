"""
Password reset by single-use emailed link.

Only the SHA-256 digest of the reset token is stored. A successful reset
replaces the password, clears any lockout and revokes every session in the
same atomic update that consumes the challenge.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from config import SecuritySettings
from errors import ResetTokenInvalidError
from infrastructure.email.protocol import Notifier
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc, ResetChallenge
from services.token_service import apply_revocation
from shared.crypto import CredentialHasher, hash_token
from shared.datetime_utils import Clock, is_expired, utcnow
from shared.generators import generate_secure_token
from shared.logging import get_logger
from shared.validators import normalize_email, validate_password

log = get_logger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If an account exists with this email, a password reset link has been sent"
)


class PasswordResetService:
    def __init__(
        self,
        repository: AccountRepository,
        notifier: Notifier,
        hasher: CredentialHasher,
        settings: SecuritySettings,
        reset_url_base: str,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repository
        self._notifier = notifier
        self._hasher = hasher
        self._settings = settings
        self._reset_url_base = reset_url_base.rstrip("/")
        self._clock = clock

    async def forgot_password(self, email: str) -> str:
        """Issue a reset challenge when the account exists.

        The returned message is identical whether or not the account exists.
        """
        account = await self._repo.find_by_email(normalize_email(email))
        if account is None:
            log.info("password_reset_requested", account_found=False)
            return FORGOT_PASSWORD_MESSAGE

        token = generate_secure_token()
        challenge = ResetChallenge(
            token_hash=hash_token(token),
            expires_at=self._clock()
            + timedelta(seconds=self._settings.reset_token_ttl_seconds),
        )

        def store(draft: AccountDoc) -> Optional[ResetChallenge]:
            previous = draft.reset_challenge
            draft.reset_challenge = challenge
            return previous

        _, previous = await self._repo.modify(account.account_id, store)

        sent = await self._notifier.send_password_reset_email(
            account.email, account.name, f"{self._reset_url_base}/{token}"
        )
        if not sent:
            def restore(draft: AccountDoc) -> None:
                current = draft.reset_challenge
                if current is not None and current.token_hash == challenge.token_hash:
                    draft.reset_challenge = previous

            await self._repo.modify(account.account_id, restore)
            log.error("password_reset_delivery_failed", account_id=account.account_id)
            return FORGOT_PASSWORD_MESSAGE

        log.info("password_reset_requested", account_found=True, account_id=account.account_id)
        return FORGOT_PASSWORD_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> AccountDoc:
        new_password = validate_password(new_password)
        if not token:
            raise ResetTokenInvalidError("Invalid or expired reset token")

        digest = hash_token(token)
        account = await self._repo.find_by_reset_token_hash(digest)
        if account is None:
            log.warning("password_reset_failed", reason="unknown_token")
            raise ResetTokenInvalidError("Invalid or expired reset token")

        now = self._clock()
        new_hash = self._hasher.hash(new_password)

        def consume(draft: AccountDoc) -> None:
            challenge = draft.reset_challenge
            if challenge is None or challenge.token_hash != digest:
                raise ResetTokenInvalidError("Invalid or expired reset token")
            if is_expired(challenge.expires_at, now):
                raise ResetTokenInvalidError("Invalid or expired reset token")
            draft.password_hash = new_hash
            draft.reset_challenge = None
            draft.failed_login_attempts = 0
            draft.lock_until = None
            apply_revocation(draft)

        try:
            updated, _ = await self._repo.modify(account.account_id, consume)
        except ResetTokenInvalidError:
            log.warning("password_reset_failed", account_id=account.account_id, reason="expired_or_used")
            raise

        log.info("password_reset_completed", account_id=account.account_id)
        return updated
