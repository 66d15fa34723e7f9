"""
Input validators for registration and credential changes — pure functions.

Each ``validate_*`` function returns the normalised value or raises
``errors.ValidationError`` with the offending ``field`` set, so service code
can call them inline.
"""

from __future__ import annotations

from typing import Optional

from email_validator import EmailNotValidError, validate_email as _validate_email

from errors import ValidationError
from schemas.models.account import SELF_REGISTRATION_ROLES, Role

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100


def normalize_email(email: Optional[str]) -> str:
    """Trim and case-fold an email address for lookups and storage."""
    return (email or "").strip().lower()


def validate_name(name: Optional[str]) -> str:
    """Return the trimmed name; 2–100 characters."""
    trimmed = (name or "").strip()
    if not NAME_MIN_LENGTH <= len(trimmed) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be between {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters",
            field="name",
        )
    return trimmed


def validate_email(email: Optional[str]) -> str:
    """Return the normalised address, or raise if it is not well-formed.

    Deliverability (DNS) is not checked; ownership is proven by the OTP.
    """
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required", field="email")
    try:
        _validate_email(normalized, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationError(
            "Please provide a valid email address", field="email"
        ) from None
    return normalized


def validate_password(password: Optional[str]) -> str:
    """Return *password* unchanged when it is 6–100 characters long."""
    if not password or not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be between {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters",
            field="password",
        )
    return password


def validate_otp_format(code: Optional[str], length: int = 6) -> str:
    """Return the trimmed code when it is exactly *length* decimal digits."""
    trimmed = (code or "").strip()
    if len(trimmed) != length or not trimmed.isdigit():
        raise ValidationError(f"OTP must be a {length}-digit number", field="otp")
    return trimmed


def normalize_role(role: Optional[str]) -> Role:
    """Map a requested self-registration role to an allowed one.

    Unknown roles and roles that need administrative action (``admin``)
    fall back to ``patient``.
    """
    if role:
        try:
            candidate = Role(role.strip().lower())
        except ValueError:
            return Role.PATIENT
        if candidate in SELF_REGISTRATION_ROLES:
            return candidate
    return Role.PATIENT
