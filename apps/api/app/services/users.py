"""User profile service layer."""

from __future__ import annotations

import logging

from app.core.logging_safety import safe_log_identifier
from app.core.security import PasswordHasher
from app.errors import ApiError, not_found_error
from app.repositories.base import RecordStore
from app.schemas.auth import ChangePasswordRequest, ProfileUpdateResponse, UpdateProfileRequest, User
from app.schemas.base import MessageResponse
from app.services.auth import to_user

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, store: RecordStore, hasher: PasswordHasher) -> None:
        self._store = store
        self._hasher = hasher

    def get_profile(self, *, user_id: str) -> User:
        record = self._store.get_user(user_id)
        if record is None:
            raise not_found_error()
        return to_user(record)

    def update_profile(self, *, user_id: str, payload: UpdateProfileRequest) -> ProfileUpdateResponse:
        if self._store.get_user(user_id) is None:
            raise not_found_error()

        changes = {
            key: value.strip()
            for key, value in payload.model_dump(exclude_none=True, exclude_unset=True).items()
        }
        record = self._store.update_user(user_id, changes) if changes else self._store.get_user(user_id)
        if record is None:
            raise not_found_error()
        return ProfileUpdateResponse(message="Profile updated successfully", user=to_user(record))

    def change_password(self, *, user_id: str, payload: ChangePasswordRequest) -> MessageResponse:
        record = self._store.get_user(user_id)
        if record is None:
            raise not_found_error()
        if not self._hasher.verify(payload.current_password, record.password_hash):
            raise ApiError(status_code=400, code="INVALID_CURRENT_PASSWORD", message="Current password is incorrect")

        self._store.update_user(user_id, {"password_hash": self._hasher.hash(payload.new_password)})
        revoked = self._store.revoke_user_sessions(user_id)
        logger.info(
            "user.password_changed user_id=%s sessions_revoked=%s",
            safe_log_identifier(user_id, prefix="uid"),
            revoked,
        )
        return MessageResponse(message="Password changed successfully. Please log in again.")

    def deactivate(self, *, user_id: str) -> MessageResponse:
        if self._store.get_user(user_id) is None:
            raise not_found_error()
        self._store.update_user(user_id, {"is_active": False})
        self._store.revoke_user_sessions(user_id)
        logger.info("user.deactivated user_id=%s", safe_log_identifier(user_id, prefix="uid"))
        return MessageResponse(message="Account deactivated successfully")
