"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.adapters.speech import MockSpeechToTextClient, SpeechToTextClient, WhisperSpeechToTextClient
from app.adapters.storage import FileStorage, LocalFileStorage, S3FileStorage
from app.core.config import Settings, get_settings
from app.core.security import PasswordHasher
from app.db.session import build_engine, build_session_factory
from app.errors import ApiError
from app.repositories.base import RecordStore
from app.repositories.memory import InMemoryStore
from app.repositories.sql import SqlRecordStore
from app.routes import auth_router, files_router, health_router, transcriptions_router, users_router
from app.schemas.error import FieldError, ValidationErrorDetails, ValidationErrorResponse
from app.services.auth import AuthService
from app.services.transcription_runner import TranscriptionRunner
from app.workers.queue import TranscriptionQueue
from app.workers.session_purge import SessionPurgeTask

logger = logging.getLogger(__name__)

_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def build_store(settings: Settings) -> RecordStore:
    if settings.database_url:
        return SqlRecordStore(build_session_factory(build_engine(settings.database_url)))
    return InMemoryStore()


def build_storage(settings: Settings) -> FileStorage:
    """S3 when a bucket is configured, local disk otherwise."""
    if settings.s3_bucket:
        return S3FileStorage(
            settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            key_prefix=settings.s3_key_prefix,
        )
    return LocalFileStorage(settings.upload_dir)


def build_speech_client(settings: Settings) -> SpeechToTextClient:
    if settings.speech_provider == "mock":
        return MockSpeechToTextClient(confidence=settings.default_confidence)
    return WhisperSpeechToTextClient(
        api_key=settings.openai_api_key,
        model=settings.whisper_model,
        base_url=settings.openai_base_url,
        max_file_bytes=settings.whisper_max_bytes,
        default_confidence=settings.default_confidence,
    )


def _validation_fields(exc: RequestValidationError) -> list[FieldError]:
    fields: list[FieldError] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in _REQUEST_LOCATIONS]
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        fields.append(FieldError(field=".".join(location) or "request", message=message))
    return fields


def _apply_validation_error_responses(schema: dict) -> None:
    """Document request validation failures as the 400 contract instead of FastAPI's 422."""
    for path_item in schema.get("paths", {}).values():
        for operation in path_item.values():
            responses = operation.get("responses", {})
            if responses.pop("422", None) is None or "400" in responses:
                continue
            responses["400"] = {
                "description": "Validation failed",
                "content": {
                    "application/json": {"schema": {"$ref": "#/components/schemas/ValidationErrorResponse"}},
                },
            }
    schemas = schema.get("components", {}).get("schemas", {})
    schemas.pop("HTTPValidationError", None)
    schemas.pop("ValidationError", None)


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStore | None = None,
    storage: FileStorage | None = None,
    speech_client: SpeechToTextClient | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store if store is not None else build_store(settings)
    storage = storage if storage is not None else build_storage(settings)
    speech_client = speech_client if speech_client is not None else build_speech_client(settings)
    hasher = PasswordHasher(rounds=settings.password_hash_rounds)

    runner = TranscriptionRunner(
        store,
        storage,
        speech_client,
        timeout_seconds=settings.transcription_timeout_seconds,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
        temp_dir=settings.temp_dir,
        http_transport=http_transport,
    )
    queue = TranscriptionQueue(
        runner,
        store,
        workers=settings.transcription_workers,
        stale_after_seconds=settings.transcription_timeout_seconds,
    )
    session_purge = SessionPurgeTask(
        AuthService(store, hasher, settings).purge_expired_sessions,
        interval_seconds=settings.session_purge_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await queue.start()
        await session_purge.start()
        try:
            yield
        finally:
            await session_purge.stop()
            await queue.stop()

    app = FastAPI(title="Vocali API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.storage = storage
    app.state.speech_client = speech_client
    app.state.password_hasher = hasher
    app.state.transcription_runner = runner
    app.state.transcription_queue = queue

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = _validation_fields(exc)
        logger.info(
            "request.validation_failed method=%s path=%s fields=%s",
            request.method,
            request.url.path,
            ",".join(field.field for field in fields),
        )
        payload = ValidationErrorResponse(
            code="VALIDATION_ERROR",
            message="Validation failed",
            details=ValidationErrorDetails(fields=fields),
        )
        return JSONResponse(status_code=400, content=payload.model_dump(mode="json"))

    api_prefix = "/api"
    app.include_router(health_router, prefix=api_prefix)
    app.include_router(auth_router, prefix=api_prefix)
    app.include_router(users_router, prefix=api_prefix)
    app.include_router(files_router, prefix=api_prefix)
    app.include_router(transcriptions_router, prefix=api_prefix)

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_validation_error_responses(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
