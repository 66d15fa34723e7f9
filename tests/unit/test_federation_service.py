"""Unit tests for FederationService."""

import pytest

from errors import FederationFailedError
from shared.crypto import tokens_match


def _profile(email="ada@x.com", name="Ada Lovelace", verified=True):
    return {"email": email, "name": name, "email_verified": verified}


class TestNewIdentity:
    async def test_creates_verified_account_without_password(
        self, federation_service, repo, clock
    ):
        result = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        account = result.account
        assert account.email == "ada@x.com"
        assert account.is_verified is True
        assert account.verified_at == clock.now
        assert account.password_hash is None
        assert account.role == "patient"
        assert account.external_identity.provider == "google"
        assert account.external_identity.subject == "sub-123"

        stored = await repo.find_by_id(account.account_id)
        assert tokens_match(result.tokens.refresh_token, stored.refresh_token_hash)

    async def test_issued_pair_belongs_to_new_account(self, federation_service, token_service):
        result = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        claims = token_service.verify_access(result.tokens.access_token)
        assert claims["sub"] == result.account.account_id
        refreshed = await token_service.refresh(result.tokens.refresh_token)
        assert refreshed.access_token

    async def test_missing_email_fails_without_writing(self, federation_service, repo):
        with pytest.raises(FederationFailedError):
            await federation_service.login_with_external_identity(
                "google", "sub-123", _profile(email="")
            )
        assert len(repo) == 0

    async def test_missing_subject(self, federation_service, repo):
        with pytest.raises(FederationFailedError):
            await federation_service.login_with_external_identity("google", "", _profile())
        assert len(repo) == 0


class TestKnownIdentity:
    async def test_second_login_reuses_account(self, federation_service, repo):
        first = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        second = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        assert first.account.account_id == second.account.account_id
        assert len(repo) == 1

        stored = await repo.find_by_id(first.account.account_id)
        assert tokens_match(second.tokens.refresh_token, stored.refresh_token_hash)
        assert not tokens_match(first.tokens.refresh_token, stored.refresh_token_hash)

    async def test_lock_state_is_ignored(self, federation_service, repo, clock):
        first = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )

        def lock(draft):
            draft.failed_login_attempts = 5
            draft.lock_until = clock.now.replace(year=clock.now.year + 1)

        await repo.modify(first.account.account_id, lock)
        again = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        assert again.tokens.access_token


class TestExistingEmail:
    async def test_links_when_provider_verified_email(
        self, federation_service, make_account, repo
    ):
        local = await make_account(is_verified=False)
        result = await federation_service.login_with_external_identity(
            "google", "sub-123", _profile()
        )
        assert result.account.account_id == local.account_id
        stored = await repo.find_by_id(local.account_id)
        assert stored.external_identity.subject == "sub-123"
        assert stored.is_verified is True
        assert stored.password_hash == local.password_hash

    async def test_unverified_provider_email_is_rejected(
        self, federation_service, make_account, repo
    ):
        local = await make_account()
        with pytest.raises(FederationFailedError):
            await federation_service.login_with_external_identity(
                "google", "sub-123", _profile(verified=False)
            )
        stored = await repo.find_by_id(local.account_id)
        assert stored.external_identity is None
        assert stored.refresh_token_hash is None
        assert stored.version == local.version

    async def test_account_linked_to_other_subject(self, federation_service, repo):
        await federation_service.login_with_external_identity("google", "sub-1", _profile())
        with pytest.raises(FederationFailedError):
            await federation_service.login_with_external_identity("google", "sub-2", _profile())
        assert len(repo) == 1


class TestFailureWrapping:
    async def test_repository_error_becomes_federation_failed(
        self, federation_service, repo, mocker
    ):
        mocker.patch.object(repo, "insert", side_effect=RuntimeError("store down"))
        with pytest.raises(FederationFailedError):
            await federation_service.login_with_external_identity(
                "google", "sub-123", _profile()
            )
        assert len(repo) == 0
