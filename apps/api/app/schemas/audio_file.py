"""Audio file API schemas."""

from datetime import datetime
from enum import Enum

from app.schemas.base import ApiModel


class StorageKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class AudioFile(ApiModel):
    id: str
    user_id: str
    original_filename: str
    stored_filename: str
    file_size: int
    mime_type: str
    storage_kind: StorageKind
    created_at: datetime
    updated_at: datetime | None = None


class Pagination(ApiModel):
    page: int
    limit: int
    total: int


class AudioFilePage(ApiModel):
    files: list[AudioFile]
    pagination: Pagination


class AudioFileStats(ApiModel):
    total_files: int
    total_size: int
    average_size: float


class DownloadUrlResponse(ApiModel):
    download_url: str
    expires_at: datetime | None = None
