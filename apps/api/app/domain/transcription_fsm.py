"""Transcription job lifecycle transition rules."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.errors import ApiError
from app.schemas.transcription import TranscriptionStatus

_TERMINAL_STATES: set[TranscriptionStatus] = {
    TranscriptionStatus.COMPLETED,
    TranscriptionStatus.FAILED,
}

_ALLOWED_TRANSITIONS: dict[TranscriptionStatus, set[TranscriptionStatus]] = {
    TranscriptionStatus.PENDING: {TranscriptionStatus.PROCESSING},
    TranscriptionStatus.PROCESSING: {TranscriptionStatus.COMPLETED, TranscriptionStatus.FAILED},
    # Settled jobs only move again through an explicit retry.
    TranscriptionStatus.COMPLETED: {TranscriptionStatus.PENDING},
    TranscriptionStatus.FAILED: {TranscriptionStatus.PENDING},
}


def is_terminal(status: TranscriptionStatus) -> bool:
    return status in _TERMINAL_STATES


def allowed_next_statuses(status: TranscriptionStatus) -> list[TranscriptionStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: TranscriptionStatus, new_status: TranscriptionStatus) -> None:
    """Validate transition according to lifecycle rules."""
    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next_statuses(old_status),
            },
        )


def ensure_retryable(status: TranscriptionStatus) -> None:
    """A retry may only target a settled job."""
    if not is_terminal(status):
        raise ApiError(
            status_code=400,
            code="RETRY_NOT_ALLOWED_STATE",
            message="Transcription is already in progress",
            details={"current_status": status},
        )


def transition_changes(
    new_status: TranscriptionStatus,
    *,
    now: datetime,
    transcription_text: str | None = None,
    confidence_score: float | None = None,
    error_message: str | None = None,
    language: str | None = None,
) -> dict[str, Any]:
    """Build the field updates that accompany entering ``new_status``.

    Result fields are written together with the status so a row never shows
    text or confidence outside ``completed`` or an error outside ``failed``.
    """
    changes: dict[str, Any] = {"status": new_status}

    if new_status is TranscriptionStatus.PENDING:
        changes.update(
            transcription_text=None,
            confidence_score=None,
            error_message=None,
            processing_started_at=None,
            processing_completed_at=None,
        )
    elif new_status is TranscriptionStatus.PROCESSING:
        changes.update(
            transcription_text=None,
            confidence_score=None,
            error_message=None,
            processing_started_at=now,
            processing_completed_at=None,
        )
    elif new_status is TranscriptionStatus.COMPLETED:
        if transcription_text is None or confidence_score is None:
            raise ValueError("completed transcriptions require text and confidence")
        changes.update(
            transcription_text=transcription_text,
            confidence_score=confidence_score,
            error_message=None,
            processing_completed_at=now,
        )
        if language:
            changes["language"] = language
    elif new_status is TranscriptionStatus.FAILED:
        changes.update(
            transcription_text=None,
            confidence_score=None,
            error_message=error_message or "Transcription failed",
            processing_completed_at=now,
        )

    return changes
