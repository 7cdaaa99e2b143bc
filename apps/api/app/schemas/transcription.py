"""Transcription API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import Field

from app.schemas.audio_file import AudioFile
from app.schemas.base import ApiModel


class TranscriptionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Transcription(ApiModel):
    id: str
    audio_file_id: str
    user_id: str
    transcription_text: str | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    language: str
    status: TranscriptionStatus
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class TranscriptionDetail(Transcription):
    audio_file: AudioFile | None = None


class TranscriptionPage(ApiModel):
    items: list[TranscriptionDetail]
    limit: int
    offset: int
    total: int


class UploadTranscriptionResponse(ApiModel):
    transcription_id: str
    audio_file_id: str
    status: TranscriptionStatus
    file_name: str


class RetryTranscriptionResponse(ApiModel):
    message: str
    transcription: Transcription


class TranscriptionStats(ApiModel):
    total_transcriptions: int
    completed_transcriptions: int
    failed_transcriptions: int
    pending_transcriptions: int
    processing_transcriptions: int
    average_confidence: float | None = None
