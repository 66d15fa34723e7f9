"""
Administrator bootstrap.

Self-registration never grants ``admin``, so the first administrator is
inserted here from configuration. Seeding is idempotent: an existing admin
with the configured email is left untouched, and an email already held by a
non-admin account is never promoted.
"""

from __future__ import annotations

from typing import Optional

from config import AdminSettings
from errors import DuplicateAccountError
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc, Role
from shared.crypto import CredentialHasher
from shared.datetime_utils import Clock, utcnow
from shared.logging import get_logger
from shared.validators import validate_email, validate_name, validate_password

log = get_logger(__name__)


async def seed_admin(
    repository: AccountRepository,
    hasher: CredentialHasher,
    settings: AdminSettings,
    *,
    clock: Clock = utcnow,
) -> Optional[AccountDoc]:
    """Ensure a verified admin account exists for ``settings.admin_email``.

    Returns:
        The admin account, or None when seeding is disabled or the email
        belongs to a non-admin account.
    """
    if not settings.seed_enabled:
        return None

    email = validate_email(settings.admin_email)
    existing = await repository.find_by_email(email)
    if existing is None:
        try:
            existing = await repository.insert(
                AccountDoc(
                    email=email,
                    name=validate_name(settings.admin_name),
                    password_hash=hasher.hash(validate_password(settings.admin_password)),
                    role=Role.ADMIN,
                    is_verified=True,
                    verified_at=clock(),
                )
            )
        except DuplicateAccountError:
            # Another instance seeded it first
            existing = await repository.find_by_email(email)
            if existing is None:
                raise
        else:
            log.info("admin_seeded", account_id=existing.account_id)
            return existing

    if existing.role != Role.ADMIN.value:
        log.warning(
            "admin_seed_skipped",
            account_id=existing.account_id,
            reason="email_in_use",
        )
        return None

    log.info("admin_exists", account_id=existing.account_id)
    return existing
