"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.adapters.auth import (
    AuthVerificationError,
    MockTokenVerifier,
    SessionTokenVerifier,
    TokenVerifier,
)
from app.adapters.storage import FileStorage
from app.core.config import Settings
from app.core.logging_safety import safe_log_identifier
from app.core.security import PasswordHasher
from app.errors import ApiError
from app.repositories.base import RecordStore
from app.schemas.auth import AuthPrincipal
from app.services.auth import AuthService
from app.services.files import FileService
from app.services.transcriptions import TranscriptionService
from app.services.users import UserService
from app.workers.queue import TranscriptionQueue

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="UNAUTHORIZED", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_settings_from_app(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_transcription_queue(request: Request) -> TranscriptionQueue:
    return request.app.state.transcription_queue


def get_token_verifier(
    settings: Annotated[Settings, Depends(get_settings_from_app)],
    store: Annotated[RecordStore, Depends(get_store)],
) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "mock":
        return MockTokenVerifier()
    return SessionTokenVerifier(store, secret=settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal:
    """Validate bearer token and attach normalized principal to request context."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=invalid_or_missing_bearer",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error("Access token required")

    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid or expired token") from exc

    logger.debug(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
    )
    request.state.auth_principal = principal
    return principal


def get_auth_service(
    store: Annotated[RecordStore, Depends(get_store)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> AuthService:
    return AuthService(store, hasher, settings)


def get_user_service(
    store: Annotated[RecordStore, Depends(get_store)],
    hasher: Annotated[PasswordHasher, Depends(get_password_hasher)],
) -> UserService:
    return UserService(store, hasher)


def get_file_service(
    store: Annotated[RecordStore, Depends(get_store)],
    storage: Annotated[FileStorage, Depends(get_storage)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> FileService:
    return FileService(store, storage, settings)


def get_transcription_service(
    store: Annotated[RecordStore, Depends(get_store)],
    files: Annotated[FileService, Depends(get_file_service)],
    queue: Annotated[TranscriptionQueue, Depends(get_transcription_queue)],
    settings: Annotated[Settings, Depends(get_settings_from_app)],
) -> TranscriptionService:
    return TranscriptionService(store, files, queue, default_language=settings.default_language)
