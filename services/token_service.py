"""
Session token issuance, verification and revocation.

Access tokens are stateless: signature, issuer, audience and expiry are all
that ``verify_access`` checks. Refresh tokens carry a per-issuance ``jti`` and
are additionally matched against the SHA-256 digest stored on the account,
which is what makes logout and password reset able to revoke them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import jwt

from config import JWTSettings
from errors import TokenExpiredError, TokenInvalidError, TokenRevokedError
from repositories.protocol import AccountRepository
from schemas.models.account import AccountDoc
from shared.crypto import hash_token, tokens_match
from shared.datetime_utils import Clock, utcnow
from shared.generators import generate_token_id
from shared.logging import get_logger

log = get_logger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_token_hash: str
    expires_in: int


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    expires_in: int
    # Only set when refresh-token rotation is enabled
    refresh_token: Optional[str] = None


def apply_revocation(account: AccountDoc) -> None:
    """Mutator step shared by logout and password reset."""
    account.refresh_token_hash = None


class TokenService:
    def __init__(
        self,
        settings: JWTSettings,
        repository: AccountRepository,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._repo = repository
        self._clock = clock
        self._signing_key, self._verify_key = self._jwt_keys(settings)
        self._algorithm = "RS256" if settings.use_rs256 else "HS256"

    @staticmethod
    def _jwt_keys(settings: JWTSettings) -> tuple[Any, Any]:
        if settings.use_rs256:
            # Support keys provided via env with literal \n sequences
            priv = settings.jwt_private_key.replace("\\n", "\n").encode("utf-8")
            pub = settings.jwt_public_key.replace("\\n", "\n").encode("utf-8")
            return priv, pub
        if not settings.jwt_secret:
            raise RuntimeError(
                "JWT_SECRET must be set when RS256 keys are not provided"
            )
        return settings.jwt_secret, settings.jwt_secret

    @property
    def access_ttl(self) -> int:
        return self._settings.access_token_ttl_seconds

    def _encode(self, account_id: str, role: str, token_type: str, ttl: int, **extra: Any) -> str:
        now = self._clock()
        claims = {
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": str(account_id),
            "role": role,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl)).timestamp()),
            **extra,
        }
        return jwt.encode(claims, self._signing_key, algorithm=self._algorithm)

    def _decode(self, token: str, expected_type: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                # exp and iat are checked against the injected clock below
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            log.warning("token_invalid", kind=expected_type, reason=str(e))
            raise TokenInvalidError(f"Invalid {expected_type} token") from None

        if claims.get("type") != expected_type:
            log.warning(
                "token_invalid", kind=expected_type, reason="wrong_token_type"
            )
            raise TokenInvalidError(f"Invalid {expected_type} token")

        if int(self._clock().timestamp()) >= int(claims["exp"]):
            raise TokenExpiredError(f"{expected_type.capitalize()} token expired")

        return claims

    def issue_access(self, account_id: str, role: str) -> str:
        return self._encode(account_id, role, ACCESS_TOKEN_TYPE, self.access_ttl)

    def issue(self, account_id: str, role: str) -> TokenPair:
        """Mint an access/refresh pair. Only the refresh digest is meant to be persisted."""
        access_token = self.issue_access(account_id, role)
        refresh_token = self._encode(
            account_id,
            role,
            REFRESH_TOKEN_TYPE,
            self._settings.refresh_token_ttl_seconds,
            jti=generate_token_id(),
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_token_hash=hash_token(refresh_token),
            expires_in=self.access_ttl,
        )

    def verify_access(self, token: str) -> dict[str, Any]:
        """Stateless check of an access token; never touches the repository."""
        return self._decode(token, ACCESS_TOKEN_TYPE)

    async def refresh(self, refresh_token: str) -> RefreshResult:
        """Exchange a refresh token for a new access token.

        The token must still match the digest stored on the account; anything
        else (logged out, reset, superseded) is reported as revoked.
        """
        claims = self._decode(refresh_token, REFRESH_TOKEN_TYPE)
        account_id = claims["sub"]

        account = await self._repo.find_by_id(account_id)
        if account is None or not tokens_match(refresh_token, account.refresh_token_hash):
            log.warning(
                "refresh_token_revoked",
                account_id=account_id,
                reason="no_account" if account is None else "hash_mismatch",
            )
            raise TokenRevokedError("Refresh token has been revoked")

        if not self._settings.rotate_refresh_tokens:
            access_token = self.issue_access(account.account_id, account.role)
            log.info("access_token_refreshed", account_id=account_id)
            return RefreshResult(access_token=access_token, expires_in=self.access_ttl)

        pair = self.issue(account.account_id, account.role)

        def rotate(draft: AccountDoc) -> None:
            if not tokens_match(refresh_token, draft.refresh_token_hash):
                raise TokenRevokedError("Refresh token has been revoked")
            draft.refresh_token_hash = pair.refresh_token_hash

        try:
            await self._repo.modify(account_id, rotate)
        except TokenRevokedError:
            log.warning(
                "refresh_token_revoked", account_id=account_id, reason="rotated_concurrently"
            )
            raise

        log.info("refresh_token_rotated", account_id=account_id)
        return RefreshResult(
            access_token=pair.access_token,
            expires_in=pair.expires_in,
            refresh_token=pair.refresh_token,
        )

    async def revoke(self, account_id: str, *, record_logout: bool = False) -> AccountDoc:
        """Clear the stored refresh digest, ending every session of the account."""
        now = self._clock()

        def mutate(draft: AccountDoc) -> None:
            apply_revocation(draft)
            if record_logout:
                draft.last_logout_at = now

        account, _ = await self._repo.modify(account_id, mutate)
        log.info("session_revoked", account_id=account_id, logout=record_logout)
        return account
