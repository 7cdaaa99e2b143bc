"""Session-backed bearer token verifier."""

from __future__ import annotations

from datetime import UTC, datetime

from app.adapters.auth.base import AuthVerificationError, TokenVerifier
from app.core.security import TokenDecodeError, decode_access_token, hash_token
from app.repositories.base import RecordStore
from app.schemas.auth import AuthPrincipal


class SessionTokenVerifier(TokenVerifier):
    """Accepts signed tokens whose session is still live and whose user is active."""

    def __init__(self, store: RecordStore, *, secret: str, algorithm: str) -> None:
        self._store = store
        self._secret = secret
        self._algorithm = algorithm

    def verify_token(self, token: str) -> AuthPrincipal:
        try:
            user_id = decode_access_token(token, secret=self._secret, algorithm=self._algorithm)
        except TokenDecodeError as exc:
            raise AuthVerificationError(str(exc)) from exc

        session = self._store.get_session(hash_token(token))
        if session is None or session.user_id != user_id or not session.is_valid(datetime.now(UTC)):
            raise AuthVerificationError("Session expired or revoked")

        if self._store.get_user(user_id) is None:
            raise AuthVerificationError("User not found or inactive")

        return AuthPrincipal(user_id=user_id, token=token)


__all__ = ["SessionTokenVerifier"]
