"""Password hashing and bearer token primitives."""

from __future__ import annotations

from datetime import datetime, timedelta
import hashlib
from uuid import uuid4

from jose import JWTError, jwt
from passlib.context import CryptContext


class TokenDecodeError(Exception):
    """Raised when a bearer token signature, expiry or subject is invalid."""


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except ValueError:
            # Malformed stored hash.
            return False


def hash_token(token: str) -> str:
    """Sessions are keyed by this digest; raw tokens are never persisted."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_access_token(
    user_id: str,
    *,
    secret: str,
    algorithm: str,
    ttl: timedelta,
    now: datetime,
) -> tuple[str, datetime]:
    expires_at = now + ttl
    claims = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        # Two tokens issued within the same second must still hash differently.
        "jti": uuid4().hex,
    }
    return jwt.encode(claims, secret, algorithm=algorithm), expires_at


def decode_access_token(token: str, *, secret: str, algorithm: str) -> str:
    """Return the token subject after verifying signature and expiry."""
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise TokenDecodeError("Invalid or expired token") from exc

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise TokenDecodeError("Token missing user identity")
    return subject


__all__ = ["PasswordHasher", "TokenDecodeError", "decode_access_token", "hash_token", "issue_access_token"]
