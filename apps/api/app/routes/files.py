"""Audio file routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request, status
from fastapi.responses import FileResponse, RedirectResponse, Response

from app.routes.dependencies import get_authenticated_principal, get_file_service
from app.schemas.audio_file import AudioFile, AudioFilePage, AudioFileStats, DownloadUrlResponse
from app.schemas.auth import AuthPrincipal
from app.schemas.base import MessageResponse
from app.schemas.error import NoLeakNotFoundError, UnauthorizedError
from app.services.files import FileService

router = APIRouter(prefix="/files", tags=["Files"])


@router.get("", response_model=AudioFilePage, responses={401: {"model": UnauthorizedError}})
def list_files(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> AudioFilePage:
    return service.list_files(owner_id=principal.user_id, page=page, limit=limit)


@router.get("/stats", response_model=AudioFileStats, responses={401: {"model": UnauthorizedError}})
def file_stats(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
) -> AudioFileStats:
    return service.stats(owner_id=principal.user_id)


@router.get(
    "/{fileId}",
    response_model=AudioFile,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def get_file(
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
) -> AudioFile:
    return service.get_file(owner_id=principal.user_id, file_id=file_id)


@router.get(
    "/{fileId}/download",
    response_model=DownloadUrlResponse,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def get_download_url(
    request: Request,
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
) -> DownloadUrlResponse:
    content_url = str(request.url_for("get_file_content", fileId=file_id))
    return service.download_url(owner_id=principal.user_id, file_id=file_id, content_url=content_url)


@router.get(
    "/{fileId}/content",
    response_class=FileResponse,
    responses={
        200: {"content": {"audio/*": {}}, "description": "Audio bytes"},
        307: {"description": "Redirect to a signed storage URL"},
        401: {"model": UnauthorizedError},
        404: {"model": NoLeakNotFoundError},
    },
)
def get_file_content(
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
) -> Response:
    record, signed_url = service.content_source(owner_id=principal.user_id, file_id=file_id)
    if signed_url is not None:
        return RedirectResponse(signed_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    return FileResponse(record.file_path, media_type=record.mime_type, filename=record.original_filename)


@router.delete(
    "/{fileId}",
    response_model=MessageResponse,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def delete_file(
    file_id: Annotated[str, Path(alias="fileId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[FileService, Depends(get_file_service)],
) -> MessageResponse:
    return service.delete_file(owner_id=principal.user_id, file_id=file_id)
