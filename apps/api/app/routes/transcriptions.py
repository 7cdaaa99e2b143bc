"""Transcription routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from app.routes.dependencies import get_authenticated_principal, get_transcription_service
from app.schemas.auth import AuthPrincipal
from app.schemas.base import MessageResponse
from app.schemas.error import (
    FileTooLargeError,
    NoLeakNotFoundError,
    RetryStateConflictError,
    UnauthorizedError,
    ValidationErrorResponse,
)
from app.schemas.transcription import (
    RetryTranscriptionResponse,
    TranscriptionDetail,
    TranscriptionPage,
    TranscriptionStats,
    TranscriptionStatus,
    UploadTranscriptionResponse,
)
from app.services.transcriptions import TranscriptionService

router = APIRouter(prefix="/transcriptions", tags=["Transcriptions"])


@router.post(
    "/upload",
    response_model=UploadTranscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": UnauthorizedError},
        413: {"model": FileTooLargeError},
    },
)
async def upload_audio(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
    audio: Annotated[UploadFile | None, File()] = None,
    language: Annotated[str | None, Form(max_length=16)] = None,
) -> UploadTranscriptionResponse:
    # One byte past the limit is enough to reject with 413.
    content = await audio.read(service.max_upload_bytes + 1) if audio is not None else b""
    return await run_in_threadpool(
        service.upload,
        owner_id=principal.user_id,
        filename=audio.filename if audio is not None else None,
        mime_type=audio.content_type if audio is not None else None,
        content=content,
        language=language,
    )


@router.get("", response_model=TranscriptionPage, responses={401: {"model": UnauthorizedError}})
def list_transcriptions(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
    status_filter: Annotated[TranscriptionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> TranscriptionPage:
    return service.list_transcriptions(
        owner_id=principal.user_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=TranscriptionStats, responses={401: {"model": UnauthorizedError}})
def transcription_stats(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> TranscriptionStats:
    return service.stats(owner_id=principal.user_id)


@router.get(
    "/file/{fileId}",
    response_model=TranscriptionDetail,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def get_transcription_for_file(
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> TranscriptionDetail:
    return service.get_for_file(owner_id=principal.user_id, file_id=file_id)


@router.post(
    "/file/{fileId}/retry",
    response_model=RetryTranscriptionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": RetryStateConflictError},
        401: {"model": UnauthorizedError},
        404: {"model": NoLeakNotFoundError},
    },
)
def retry_transcription(
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> RetryTranscriptionResponse:
    return service.retry(owner_id=principal.user_id, file_id=file_id)


@router.get(
    "/{transcriptionId}",
    response_model=TranscriptionDetail,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def get_transcription(
    transcription_id: Annotated[str, Path(alias="transcriptionId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> TranscriptionDetail:
    return service.get_transcription(owner_id=principal.user_id, transcription_id=transcription_id)


@router.delete(
    "/{transcriptionId}",
    response_model=MessageResponse,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def delete_transcription(
    transcription_id: Annotated[str, Path(alias="transcriptionId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[TranscriptionService, Depends(get_transcription_service)],
) -> MessageResponse:
    return service.delete_transcription(owner_id=principal.user_id, transcription_id=transcription_id)
