"""Registration, login and session service layer."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import logging

from app.core.config import Settings
from app.core.logging_safety import safe_log_email, safe_log_identifier
from app.core.security import PasswordHasher, hash_token, issue_access_token
from app.errors import ApiError, not_found_error
from app.repositories.base import DuplicateRecordError, RecordStore, UserRecord
from app.schemas.auth import AuthPrincipal, AuthResponse, LoginRequest, RegisterRequest, User
from app.schemas.base import MessageResponse

logger = logging.getLogger(__name__)


def to_user(record: UserRecord) -> User:
    return User(
        id=record.id,
        email=record.email,
        first_name=record.first_name,
        last_name=record.last_name,
        is_active=record.is_active,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _invalid_credentials() -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message="Invalid email or password")


class AuthService:
    def __init__(self, store: RecordStore, hasher: PasswordHasher, settings: Settings) -> None:
        self._store = store
        self._hasher = hasher
        self._settings = settings

    def _open_session(self, user_id: str) -> str:
        token, expires_at = issue_access_token(
            user_id,
            secret=self._settings.jwt_secret,
            algorithm=self._settings.jwt_algorithm,
            ttl=timedelta(minutes=self._settings.session_ttl_minutes),
            now=datetime.now(UTC),
        )
        self._store.create_session(user_id=user_id, token_hash=hash_token(token), expires_at=expires_at)
        return token

    def register(self, payload: RegisterRequest) -> AuthResponse:
        try:
            record = self._store.create_user(
                email=payload.email,
                password_hash=self._hasher.hash(payload.password),
                first_name=payload.first_name.strip(),
                last_name=payload.last_name.strip(),
            )
        except DuplicateRecordError as exc:
            logger.info("auth.register_rejected email=%s reason=duplicate_email", safe_log_email(payload.email))
            raise ApiError(
                status_code=400,
                code="EMAIL_ALREADY_REGISTERED",
                message="User with this email already exists",
            ) from exc

        token = self._open_session(record.id)
        logger.info(
            "auth.registered user_id=%s email=%s",
            safe_log_identifier(record.id, prefix="uid"),
            safe_log_email(record.email),
        )
        return AuthResponse(message="User registered successfully", user=to_user(record), token=token)

    def login(self, payload: LoginRequest) -> AuthResponse:
        record = self._store.get_user_by_email(payload.email)
        # Unknown, inactive and wrong-password logins are indistinguishable to the caller.
        if record is None or not self._hasher.verify(payload.password, record.password_hash):
            logger.warning("auth.login_rejected email=%s", safe_log_email(payload.email))
            raise _invalid_credentials()

        token = self._open_session(record.id)
        logger.info("auth.login user_id=%s", safe_log_identifier(record.id, prefix="uid"))
        return AuthResponse(message="Login successful", user=to_user(record), token=token)

    def logout(self, principal: AuthPrincipal) -> MessageResponse:
        if principal.token:
            self._store.revoke_session(hash_token(principal.token))
        logger.info("auth.logout user_id=%s", safe_log_identifier(principal.user_id, prefix="uid"))
        return MessageResponse(message="Logout successful")

    def logout_all(self, principal: AuthPrincipal) -> MessageResponse:
        revoked = self._store.revoke_user_sessions(principal.user_id)
        logger.info(
            "auth.logout_all user_id=%s revoked=%s",
            safe_log_identifier(principal.user_id, prefix="uid"),
            revoked,
        )
        return MessageResponse(message="Logged out from all devices")

    def me(self, principal: AuthPrincipal) -> User:
        record = self._store.get_user(principal.user_id)
        if record is None:
            raise not_found_error()
        return to_user(record)

    def purge_expired_sessions(self) -> int:
        purged = self._store.purge_expired_sessions(datetime.now(UTC))
        if purged:
            logger.info("auth.sessions_purged count=%s", purged)
        return purged
