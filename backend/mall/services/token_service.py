# Overview: Service-layer operations for session tokens; issues and verifies signed JWTs.

"""
Session Token Service

Tokens are HS256 JWTs carrying the user id, username and role. Nothing is
stored server-side: a token is valid while its signature matches and it has
not expired. There is no revocation list.

FAILURE MODES:
- InvalidSignatureError: signed with another key (tampering, wrong secret)
- MalformedTokenError: not a JWT, wrong algorithm, wrong issuer, missing claims
- TokenExpiredError: expected; the caller should refresh or log in again

REFRESH POLICY:
- The signature is always verified, expiry is not
- Refused while more than refresh_window remains (too early)
- Accepted up to refresh_grace after expiry, refused afterwards
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping

import jwt
from flask import current_app

from ..errors import (
    InvalidArgumentError,
    InvalidSignatureError,
    MalformedTokenError,
    MallError,
    NotInitializedError,
    TokenExpiredError,
)
from mall.time_utils import from_timestamp, utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
EXTENSION_KEY = "tokens"
REQUIRED_CLAIMS = ["exp", "iat", "iss", "sub", "user_id", "role"]


@dataclass(frozen=True)
class SessionClaims:
    """Decoded token payload. Datetimes are UTC-naive."""
    user_id: int
    username: str
    role: str
    issued_at: datetime
    expires_at: datetime
    not_before: datetime | None
    issuer: str
    subject: str

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "issued_at": self.issued_at.isoformat() + "Z",
            "expires_at": self.expires_at.isoformat() + "Z",
            "issuer": self.issuer,
        }


class TokenService:
    def __init__(
        self,
        secret: str | None,
        *,
        ttl: timedelta = timedelta(hours=24),
        issuer: str = "mall",
        refresh_window: timedelta | None = timedelta(hours=1),
        refresh_grace: timedelta = timedelta(days=7),
    ):
        self._secret = secret
        self.ttl = ttl
        self.issuer = issuer
        self.refresh_window = refresh_window
        self.refresh_grace = refresh_grace

    @classmethod
    def from_config(cls, config: Mapping) -> "TokenService":
        """Build from Flask config keys (JWT_SECRET, JWT_EXPIRE_SECONDS, ...)."""
        window = int(config.get("JWT_REFRESH_WINDOW_SECONDS", 3600))
        return cls(
            config.get("JWT_SECRET"),
            ttl=timedelta(seconds=float(config.get("JWT_EXPIRE_SECONDS", 86400))),
            issuer=config.get("JWT_ISSUER", "mall"),
            # <= 0 disables the "too early" check
            refresh_window=timedelta(seconds=window) if window > 0 else None,
            refresh_grace=timedelta(seconds=int(config.get("JWT_REFRESH_GRACE_SECONDS", 604800))),
        )

    def _require_secret(self) -> str:
        if not self._secret:
            raise NotInitializedError("Token signing secret is not configured (JWT_SECRET)")
        return self._secret

    def issue_token(self, user_id: int, username: str, role: str) -> str:
        """Sign a new token valid from now until now + ttl."""
        secret = self._require_secret()
        now = datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "username": username,
            "role": role,
            "iat": now,
            "nbf": now,
            "exp": now + self.ttl,
            "iss": self.issuer,
            "sub": username,
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def _decode(self, token: str, *, verify_exp: bool) -> dict:
        secret = self._require_secret()
        if not isinstance(token, str) or not token.strip():
            raise MalformedTokenError("Token is empty")
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                issuer=self.issuer,
                options={"require": REQUIRED_CLAIMS, "verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignatureError("Token signature is invalid") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedTokenError(f"Malformed token: {exc}") from exc

    @staticmethod
    def _to_claims(payload: dict) -> SessionClaims:
        try:
            user_id = int(payload["user_id"])
            username = str(payload.get("username") or payload["sub"])
            role = payload["role"]
            if not isinstance(role, str):
                raise TypeError("role must be a string")
            return SessionClaims(
                user_id=user_id,
                username=username,
                role=role,
                issued_at=from_timestamp(payload["iat"]),
                expires_at=from_timestamp(payload["exp"]),
                not_before=from_timestamp(payload.get("nbf")),
                issuer=payload["iss"],
                subject=payload["sub"],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedTokenError(f"Malformed token claims: {exc}") from exc

    def parse_token(self, token: str) -> SessionClaims:
        """Verify signature and expiry, then return the embedded claims."""
        return self._to_claims(self._decode(token, verify_exp=True))

    def validate_token(self, token: str) -> bool:
        """True if parse_token would succeed. Never raises."""
        try:
            self.parse_token(token)
        except MallError:
            return False
        return True

    def claims_from_token(self, token: str) -> SessionClaims:
        """Signature-verified claims, ignoring expiry."""
        return self._to_claims(self._decode(token, verify_exp=False))

    def refresh_token(self, token: str) -> str:
        """
        Re-issue a token with the same user_id/username/role and a new expiry.

        Raises InvalidArgumentError when called too early and
        TokenExpiredError when the token expired longer than refresh_grace ago.
        """
        claims = self.claims_from_token(token)
        remaining = claims.expires_at - utcnow()

        if self.refresh_window is not None and remaining > self.refresh_window:
            raise InvalidArgumentError("Token is not within its refresh window yet")
        if remaining < -self.refresh_grace:
            raise TokenExpiredError("Token expired too long ago to be refreshed")

        logger.info("Refreshing session token for user_id=%s", claims.user_id)
        return self.issue_token(claims.user_id, claims.username, claims.role)


def get_token_service() -> TokenService:
    """The TokenService registered on the current app by create_app()."""
    service = current_app.extensions.get(EXTENSION_KEY)
    if service is None:
        raise NotInitializedError("Token service is not registered on this app")
    return service
