"""
Password login with brute-force lockout.

Failed attempts are counted through ``AccountRepository.modify`` so two
simultaneous wrong passwords always land as two increments. A lock is only
set when the counter reaches ``max_failed_logins`` and is cleared by the next
successful login or password reset.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config import SecuritySettings
from errors import AccountLockedError, InvalidCredentialsError, NotVerifiedError
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc
from services.token_service import TokenPair, TokenService
from shared.crypto import CredentialHasher
from shared.datetime_utils import Clock, ensure_aware, is_future, utcnow
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
LOCKED_MESSAGE = "Account temporarily locked due to too many failed login attempts"


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    account: AccountDoc


class LoginService:
    def __init__(
        self,
        repository: AccountRepository,
        token_service: TokenService,
        hasher: CredentialHasher,
        settings: SecuritySettings,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._repo = repository
        self._tokens = token_service
        self._hasher = hasher
        self._settings = settings
        self._clock = clock

    def _locked(self, account: AccountDoc, now) -> AccountLockedError:
        return AccountLockedError(
            LOCKED_MESSAGE, lock_until=ensure_aware(account.lock_until), now=now
        )

    async def login(self, email: str, password: str) -> LoginResult:
        now = self._clock()
        account = await self._repo.find_by_email(normalize_email(email))
        if account is None or not account.password_hash:
            log.warning(
                "login_failed",
                reason="user_not_found" if account is None else "no_password_set",
            )
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if is_future(account.lock_until, now):
            log.warning("login_failed", reason="account_locked", account_id=account.account_id)
            raise self._locked(account, now)

        if not self._hasher.verify(password or "", account.password_hash):
            await self._record_failure(account, now)
            raise InvalidCredentialsError(INVALID_CREDENTIALS_MESSAGE)

        if not account.is_verified:
            log.warning("login_failed", reason="not_verified", account_id=account.account_id)
            raise NotVerifiedError("Please verify your email before logging in")

        return await self._complete_login(account, password, now)

    async def _record_failure(self, account: AccountDoc, now) -> None:
        threshold = self._settings.max_failed_logins
        lock_duration = timedelta(seconds=self._settings.lock_duration_seconds)

        def mutate(draft: AccountDoc) -> bool:
            if draft.lock_until is not None and not is_future(draft.lock_until, now):
                # Previous lock has run out: start a fresh count
                draft.lock_until = None
                draft.failed_login_attempts = 0
            if is_future(draft.lock_until, now):
                raise self._locked(draft, now)
            draft.failed_login_attempts += 1
            if draft.failed_login_attempts >= threshold:
                draft.lock_until = now + lock_duration
                return True
            return False

        updated, locked_now = await self._repo.modify(account.account_id, mutate)
        if locked_now:
            log.warning(
                "account_locked",
                account_id=account.account_id,
                failed_attempts=updated.failed_login_attempts,
                lock_until=updated.lock_until.isoformat(),
            )
            raise self._locked(updated, now)

        log.warning(
            "login_failed",
            reason="invalid_password",
            account_id=account.account_id,
            failed_attempts=updated.failed_login_attempts,
        )

    async def _complete_login(
        self, account: AccountDoc, password: str, now
    ) -> LoginResult:
        tokens = self._tokens.issue(account.account_id, account.role)
        new_password_hash: Optional[str] = None
        if self._hasher.needs_rehash(account.password_hash):
            new_password_hash = self._hasher.hash(password)

        def mutate(draft: AccountDoc) -> None:
            if is_future(draft.lock_until, now):
                # Locked by a concurrent failure after our check
                raise self._locked(draft, now)
            draft.failed_login_attempts = 0
            draft.lock_until = None
            draft.refresh_token_hash = tokens.refresh_token_hash
            draft.last_login_at = now
            if new_password_hash and draft.password_hash == account.password_hash:
                draft.password_hash = new_password_hash

        updated, _ = await self._repo.modify(account.account_id, mutate)
        log.info(
            "login_success",
            account_id=account.account_id,
            auth_method="password",
            params_upgraded=new_password_hash is not None,
        )
        return LoginResult(tokens=tokens, account=updated)
