"""
Account document model.

Maps to the `accounts` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password registration: password_hash set, is_verified False, otp_challenge set
- Federated sign-in: external_identity set, no password_hash, is_verified True

Secret-bearing fields (password_hash, refresh_token_hash, otp_challenge,
reset_challenge) never leave the service; responses use AccountProfile.
`version` backs the compare-and-swap in the repository's modify().
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.models.base import MongoBaseModel


class Role(str, Enum):
    PATIENT = "patient"
    CAREGIVER = "caregiver"
    DOCTOR = "doctor"
    ADMIN = "admin"


# admin is only ever granted by administrative action
SELF_REGISTRATION_ROLES = frozenset({Role.PATIENT, Role.CAREGIVER, Role.DOCTOR})


class OtpChallenge(BaseModel):
    """Live email-verification challenge. Only the SHA-256 of the code is kept."""

    code_hash: str
    expires_at: datetime


class ResetChallenge(BaseModel):
    """Single-use password reset challenge. The plaintext token is only emailed."""

    token_hash: str
    expires_at: datetime


class ExternalIdentity(BaseModel):
    """Subject identifier at a federated identity provider."""

    provider: str
    subject: str
    linked_at: Optional[datetime] = None


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_default=True,
    )

    email: str
    name: str
    phone: Optional[str] = None
    password_hash: Optional[str] = None
    role: Role = Role.PATIENT

    is_verified: bool = False
    otp_challenge: Optional[OtpChallenge] = None

    failed_login_attempts: int = Field(default=0, ge=0)
    lock_until: Optional[datetime] = None

    refresh_token_hash: Optional[str] = None
    reset_challenge: Optional[ResetChallenge] = None
    external_identity: Optional[ExternalIdentity] = None

    last_login_at: Optional[datetime] = None
    last_logout_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    version: int = 0

    @property
    def account_id(self) -> str:
        return str(self.id)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def has_active_session(self) -> bool:
        return self.refresh_token_hash is not None
