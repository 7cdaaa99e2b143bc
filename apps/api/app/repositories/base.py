"""Record store contract and the records it exchanges with services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from app.domain.transcription_fsm import ensure_transition, transition_changes
from app.schemas.audio_file import StorageKind
from app.schemas.transcription import TranscriptionStatus


class DuplicateRecordError(Exception):
    """Raised when a unique attribute (such as a user email) is already taken."""


@dataclass(slots=True)
class UserRecord:
    id: str
    email: str
    password_hash: str
    first_name: str
    last_name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


@dataclass(slots=True)
class SessionTokenRecord:
    id: str
    user_id: str
    token_hash: str
    expires_at: datetime
    created_at: datetime
    is_revoked: bool = False

    def is_valid(self, now: datetime) -> bool:
        return not self.is_revoked and self.expires_at > now


@dataclass(slots=True)
class AudioFileRecord:
    id: str
    user_id: str
    original_filename: str
    stored_filename: str
    file_size: int
    mime_type: str
    storage_kind: StorageKind
    created_at: datetime
    updated_at: datetime | None = None
    file_path: str | None = None
    object_key: str | None = None
    bucket: str | None = None


@dataclass(slots=True)
class TranscriptionRecord:
    id: str
    audio_file_id: str
    user_id: str
    status: TranscriptionStatus
    language: str
    created_at: datetime
    updated_at: datetime | None = None
    transcription_text: str | None = None
    confidence_score: float | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    error_message: str | None = None


TRANSCRIPTION_MUTABLE_FIELDS = frozenset(
    {
        "status",
        "language",
        "transcription_text",
        "confidence_score",
        "processing_started_at",
        "processing_completed_at",
        "error_message",
    }
)
USER_MUTABLE_FIELDS = frozenset({"first_name", "last_name", "password_hash", "is_active"})


class RecordStore(ABC):
    """Persistence boundary for users, sessions, audio files and transcriptions.

    Methods suffixed ``_for_owner`` filter on the record id and the owner id
    together; a foreign record is indistinguishable from a missing one. The
    unsuffixed getters are reserved for the background runner.
    """

    # Users

    @abstractmethod
    def create_user(self, *, email: str, password_hash: str, first_name: str, last_name: str) -> UserRecord:
        """Persist a new active user; raise ``DuplicateRecordError`` on a taken email."""

    @abstractmethod
    def get_user(self, user_id: str) -> UserRecord | None:
        """Return the active user with this id."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> UserRecord | None:
        """Return the active user with this email."""

    @abstractmethod
    def update_user(self, user_id: str, changes: dict[str, Any]) -> UserRecord | None:
        """Apply a partial update and refresh ``updated_at``."""

    # Sessions

    @abstractmethod
    def create_session(self, *, user_id: str, token_hash: str, expires_at: datetime) -> SessionTokenRecord:
        """Persist a session for an issued token."""

    @abstractmethod
    def get_session(self, token_hash: str) -> SessionTokenRecord | None:
        """Return the session for a token hash regardless of validity."""

    @abstractmethod
    def revoke_session(self, token_hash: str) -> bool:
        """Revoke one session; return whether it existed."""

    @abstractmethod
    def revoke_user_sessions(self, user_id: str) -> int:
        """Revoke every unrevoked session of a user and return how many changed."""

    @abstractmethod
    def purge_expired_sessions(self, now: datetime) -> int:
        """Delete sessions that expired before ``now``."""

    # Audio files

    @abstractmethod
    def create_audio_file(
        self,
        *,
        user_id: str,
        original_filename: str,
        stored_filename: str,
        file_size: int,
        mime_type: str,
        storage_kind: StorageKind,
        file_path: str | None = None,
        object_key: str | None = None,
        bucket: str | None = None,
    ) -> AudioFileRecord:
        """Persist an audio file whose binary has already been stored."""

    @abstractmethod
    def get_audio_file(self, audio_file_id: str) -> AudioFileRecord | None:
        """Unscoped lookup used by the transcription runner."""

    @abstractmethod
    def get_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        """Owner-scoped lookup."""

    @abstractmethod
    def list_audio_files_for_owner(self, owner_id: str, *, limit: int, offset: int) -> list[AudioFileRecord]:
        """Newest first."""

    @abstractmethod
    def audio_file_stats_for_owner(self, owner_id: str) -> dict[str, int]:
        """Return ``total_files`` and ``total_size``."""

    @abstractmethod
    def delete_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        """Delete the file and its transcriptions; return the deleted record."""

    # Transcriptions

    @abstractmethod
    def create_transcription(self, *, owner_id: str, audio_file_id: str, language: str) -> TranscriptionRecord:
        """Persist a ``pending`` transcription for an owned audio file."""

    @abstractmethod
    def get_transcription(self, transcription_id: str) -> TranscriptionRecord | None:
        """Unscoped lookup used by the transcription runner."""

    @abstractmethod
    def get_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        """Owner-scoped lookup."""

    @abstractmethod
    def get_transcription_for_audio_file(self, owner_id: str, audio_file_id: str) -> TranscriptionRecord | None:
        """Most recent transcription of an owned audio file."""

    @abstractmethod
    def list_transcriptions_for_owner(
        self,
        owner_id: str,
        *,
        status: TranscriptionStatus | None,
        limit: int,
        offset: int,
    ) -> list[TranscriptionRecord]:
        """Newest first, optionally filtered by status."""

    @abstractmethod
    def count_transcriptions_for_owner(self, owner_id: str, *, status: TranscriptionStatus | None = None) -> int:
        """Count the owner's transcriptions, optionally filtered by status."""

    @abstractmethod
    def count_transcriptions_for_audio_file(self, audio_file_id: str) -> int:
        """Count transcriptions referencing an audio file."""

    @abstractmethod
    def list_pending_transcriptions(self) -> list[TranscriptionRecord]:
        """Oldest first."""

    @abstractmethod
    def list_stale_processing_transcriptions(self, started_before: datetime) -> list[TranscriptionRecord]:
        """Rows still in ``processing`` whose run started before ``started_before``."""

    @abstractmethod
    def transcription_stats_for_owner(self, owner_id: str) -> dict[str, Any]:
        """Per-status counts and the average confidence of the owner's transcriptions."""

    @abstractmethod
    def update_transcription(
        self,
        transcription_id: str,
        changes: dict[str, Any],
        *,
        expected_status: TranscriptionStatus | None = None,
    ) -> TranscriptionRecord | None:
        """Atomically apply a partial update and refresh ``updated_at``.

        With ``expected_status`` the write only happens while the row still
        holds that status. Returns the updated record, or ``None`` when the row
        is missing or the status guard did not match.
        """

    @abstractmethod
    def delete_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        """Delete an owned transcription and return it."""

    def transition_transcription(
        self,
        transcription_id: str,
        *,
        from_status: TranscriptionStatus,
        to_status: TranscriptionStatus,
        **result_fields: Any,
    ) -> TranscriptionRecord | None:
        """FSM-validated compare-and-swap from ``from_status`` to ``to_status``."""
        ensure_transition(from_status, to_status)
        changes = transition_changes(to_status, now=datetime.now(UTC), **result_fields)
        return self.update_transcription(transcription_id, changes, expected_status=from_status)


__all__ = [
    "AudioFileRecord",
    "DuplicateRecordError",
    "RecordStore",
    "SessionTokenRecord",
    "TRANSCRIPTION_MUTABLE_FIELDS",
    "TranscriptionRecord",
    "USER_MUTABLE_FIELDS",
    "UserRecord",
]
