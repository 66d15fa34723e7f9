"""Unit tests for LoginService — credentials, lockout, session issuance."""

import asyncio
from datetime import timedelta

import pytest

from errors import AccountLockedError, InvalidCredentialsError, NotVerifiedError
from shared.crypto import CredentialHasher, tokens_match


async def _fail(login_service, times, email="ada@x.com"):
    errors = []
    for _ in range(times):
        with pytest.raises((InvalidCredentialsError, AccountLockedError)) as exc:
            await login_service.login(email, "wrong-password")
        errors.append(exc.value)
    return errors


class TestCredentials:
    async def test_success_returns_pair_and_account(self, login_service, make_account, repo):
        account = await make_account()
        result = await login_service.login("ada@x.com", "secret1")
        assert result.tokens.access_token
        assert result.account.account_id == account.account_id

        stored = await repo.find_by_id(account.account_id)
        assert tokens_match(result.tokens.refresh_token, stored.refresh_token_hash)
        assert stored.last_login_at is not None

    async def test_email_is_case_insensitive(self, login_service, make_account):
        await make_account()
        result = await login_service.login("  ADA@X.com ", "secret1")
        assert result.tokens.refresh_token

    async def test_unknown_email_is_invalid_credentials(self, login_service):
        with pytest.raises(InvalidCredentialsError) as exc:
            await login_service.login("nobody@x.com", "secret1")
        assert exc.value.message == "Invalid email or password"

    async def test_wrong_password_same_message_as_unknown(self, login_service, make_account):
        await make_account()
        with pytest.raises(InvalidCredentialsError) as exc:
            await login_service.login("ada@x.com", "nope-nope")
        assert exc.value.message == "Invalid email or password"

    async def test_federated_only_account_cannot_password_login(self, login_service, make_account):
        await make_account(password=None)
        with pytest.raises(InvalidCredentialsError):
            await login_service.login("ada@x.com", "")

    async def test_unverified_account(self, login_service, make_account, repo):
        account = await make_account(is_verified=False)
        with pytest.raises(NotVerifiedError):
            await login_service.login("ada@x.com", "secret1")
        stored = await repo.find_by_id(account.account_id)
        assert stored.refresh_token_hash is None

    async def test_success_resets_failure_counter(self, login_service, make_account, repo):
        account = await make_account()
        await _fail(login_service, 3)
        await login_service.login("ada@x.com", "secret1")
        stored = await repo.find_by_id(account.account_id)
        assert stored.failed_login_attempts == 0
        assert stored.lock_until is None


class TestLockout:
    async def test_fifth_failure_locks(self, login_service, make_account, repo, clock):
        account = await make_account()
        errors = await _fail(login_service, 5)
        assert all(isinstance(e, InvalidCredentialsError) for e in errors[:4])
        assert isinstance(errors[4], AccountLockedError)
        assert errors[4].retry_after_minutes == 15

        stored = await repo.find_by_id(account.account_id)
        assert stored.failed_login_attempts == 5
        assert stored.lock_until == clock.now + timedelta(minutes=15)

    async def test_correct_password_still_locked(self, login_service, make_account, clock):
        await make_account()
        await _fail(login_service, 5)
        clock.advance(minutes=5)
        with pytest.raises(AccountLockedError) as exc:
            await login_service.login("ada@x.com", "secret1")
        assert exc.value.retry_after_seconds == 600
        assert exc.value.headers == {"Retry-After": "600"}

    async def test_locked_login_skips_hash_check(self, login_service, make_account, mocker):
        await make_account()
        await _fail(login_service, 5)
        verify = mocker.spy(CredentialHasher, "verify")
        with pytest.raises(AccountLockedError):
            await login_service.login("ada@x.com", "secret1")
        verify.assert_not_called()

    async def test_lock_expires(self, login_service, make_account, clock):
        await make_account()
        await _fail(login_service, 5)
        clock.advance(minutes=15)
        result = await login_service.login("ada@x.com", "secret1")
        assert result.tokens.access_token

    async def test_failure_after_expired_lock_starts_new_count(
        self, login_service, make_account, repo, clock
    ):
        account = await make_account()
        await _fail(login_service, 5)
        clock.advance(minutes=16)
        errors = await _fail(login_service, 1)
        assert isinstance(errors[0], InvalidCredentialsError)
        stored = await repo.find_by_id(account.account_id)
        assert stored.failed_login_attempts == 1
        assert stored.lock_until is None

    async def test_concurrent_failures_are_all_counted(self, login_service, make_account, repo):
        account = await make_account()

        async def attempt():
            try:
                await login_service.login("ada@x.com", "wrong-password")
            except (InvalidCredentialsError, AccountLockedError) as e:
                return e

        results = await asyncio.gather(*(attempt() for _ in range(4)))
        assert all(isinstance(r, InvalidCredentialsError) for r in results)
        stored = await repo.find_by_id(account.account_id)
        assert stored.failed_login_attempts == 4


class TestRehash:
    async def test_weak_hash_is_upgraded_on_login(self, login_service, make_account, repo, hasher):
        account = await make_account(password=None)
        weak_hash = CredentialHasher(time_cost=1, memory_cost=16, parallelism=1).hash("secret1")

        def set_weak(draft):
            draft.password_hash = weak_hash

        await repo.modify(account.account_id, set_weak)
        assert hasher.needs_rehash(weak_hash)

        await login_service.login("ada@x.com", "secret1")
        upgraded = (await repo.find_by_id(account.account_id)).password_hash
        assert upgraded != weak_hash
        assert not hasher.needs_rehash(upgraded)
        assert hasher.verify("secret1", upgraded)
