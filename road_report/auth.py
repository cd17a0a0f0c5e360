"""
Password hashing and signed access tokens.

Passwords are stored as bcrypt hashes. Tokens are HS256 JWTs carrying the
account id and role, valid for `token_ttl_seconds` (one day by default).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from .store import ROLES, UserAccount

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


class AuthError(Exception):
    """Missing, malformed, expired or otherwise unacceptable credentials."""


class AuthConfigError(RuntimeError):
    """Token issuance was requested but no signing secret is configured."""


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    secret = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    secret = password.encode("utf-8")[:_BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(secret, password_hash.encode("ascii"))
    except ValueError:
        # Not a bcrypt hash.
        return False


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str


class TokenIssuer:
    def __init__(self, secret: Optional[str], ttl_seconds: int = 86400):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    def issue(self, user: UserAccount, now: Optional[datetime] = None) -> str:
        if not self.enabled:
            raise AuthConfigError("jwt_secret is not configured")
        now = now or datetime.now(timezone.utc)
        payload = {
            "id": user.id,
            "role": user.role,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        if not self.enabled:
            raise AuthError("Token verification is not configured")
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp"]})
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthError("Invalid token") from exc

        user_id, role = payload.get("id"), payload.get("role")
        if not isinstance(user_id, str) or role not in ROLES:
            raise AuthError("Invalid token")
        return TokenClaims(user_id=user_id, role=role)


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        raise AuthError("No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid authorization header")
    return token.strip()
