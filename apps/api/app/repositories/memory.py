"""In-memory record store used for development and tests."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
import threading
from typing import Any
from uuid import uuid4

from app.domain.storage_location import ensure_storage_location
from app.repositories.base import (
    TRANSCRIPTION_MUTABLE_FIELDS,
    USER_MUTABLE_FIELDS,
    AudioFileRecord,
    DuplicateRecordError,
    RecordStore,
    SessionTokenRecord,
    TranscriptionRecord,
    UserRecord,
)
from app.schemas.audio_file import StorageKind
from app.schemas.transcription import TranscriptionStatus


@dataclass(slots=True)
class InMemoryStore(RecordStore):
    """Simple, deterministic persistence layer.

    Every read returns a copy taken under the lock, so callers never see a
    row halfway through an update.
    """

    users: dict[str, UserRecord] = field(default_factory=dict)
    sessions: dict[str, SessionTokenRecord] = field(default_factory=dict)
    audio_files: dict[str, AudioFileRecord] = field(default_factory=dict)
    transcriptions: dict[str, TranscriptionRecord] = field(default_factory=dict)
    user_write_count: int = 0
    audio_file_write_count: int = 0
    transcription_write_count: int = 0
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    # Users

    def create_user(self, *, email: str, password_hash: str, first_name: str, last_name: str) -> UserRecord:
        normalized_email = email.strip().lower()
        now = datetime.now(UTC)
        with self._lock:
            if any(user.email == normalized_email for user in self.users.values()):
                raise DuplicateRecordError("User with this email already exists")
            user = UserRecord(
                id=str(uuid4()),
                email=normalized_email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
            self.user_write_count += 1
            return replace(user)

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._lock:
            user = self.users.get(user_id)
            if user is None or not user.is_active:
                return None
            return replace(user)

    def get_user_by_email(self, email: str) -> UserRecord | None:
        normalized_email = email.strip().lower()
        with self._lock:
            for user in self.users.values():
                if user.email == normalized_email and user.is_active:
                    return replace(user)
        return None

    def update_user(self, user_id: str, changes: dict[str, Any]) -> UserRecord | None:
        unknown = set(changes) - USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {sorted(unknown)}")
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = datetime.now(UTC)
            self.user_write_count += 1
            return replace(user)

    # Sessions

    def create_session(self, *, user_id: str, token_hash: str, expires_at: datetime) -> SessionTokenRecord:
        session = SessionTokenRecord(
            id=str(uuid4()),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self.sessions[token_hash] = session
            return replace(session)

    def get_session(self, token_hash: str) -> SessionTokenRecord | None:
        with self._lock:
            session = self.sessions.get(token_hash)
            return replace(session) if session is not None else None

    def revoke_session(self, token_hash: str) -> bool:
        with self._lock:
            session = self.sessions.get(token_hash)
            if session is None:
                return False
            session.is_revoked = True
            return True

    def revoke_user_sessions(self, user_id: str) -> int:
        revoked = 0
        with self._lock:
            for session in self.sessions.values():
                if session.user_id == user_id and not session.is_revoked:
                    session.is_revoked = True
                    revoked += 1
        return revoked

    def purge_expired_sessions(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, session in self.sessions.items() if session.expires_at < now]
            for key in expired:
                del self.sessions[key]
        return len(expired)

    # Audio files

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
        ensure_storage_location(storage_kind, file_path=file_path, object_key=object_key, bucket=bucket)
        now = datetime.now(UTC)
        audio_file = AudioFileRecord(
            id=str(uuid4()),
            user_id=user_id,
            original_filename=original_filename,
            stored_filename=stored_filename,
            file_size=file_size,
            mime_type=mime_type,
            storage_kind=storage_kind,
            file_path=file_path,
            object_key=object_key,
            bucket=bucket,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.audio_files[audio_file.id] = audio_file
            self.audio_file_write_count += 1
            return replace(audio_file)

    def get_audio_file(self, audio_file_id: str) -> AudioFileRecord | None:
        with self._lock:
            audio_file = self.audio_files.get(audio_file_id)
            return replace(audio_file) if audio_file is not None else None

    def get_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        with self._lock:
            audio_file = self.audio_files.get(audio_file_id)
            if audio_file is None or audio_file.user_id != owner_id:
                return None
            return replace(audio_file)

    def list_audio_files_for_owner(self, owner_id: str, *, limit: int, offset: int) -> list[AudioFileRecord]:
        with self._lock:
            owned = [replace(record) for record in self.audio_files.values() if record.user_id == owner_id]
        owned.sort(key=lambda record: record.created_at, reverse=True)
        return owned[offset : offset + limit]

    def audio_file_stats_for_owner(self, owner_id: str) -> dict[str, int]:
        with self._lock:
            sizes = [record.file_size for record in self.audio_files.values() if record.user_id == owner_id]
        return {"total_files": len(sizes), "total_size": sum(sizes)}

    def delete_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        with self._lock:
            audio_file = self.audio_files.get(audio_file_id)
            if audio_file is None or audio_file.user_id != owner_id:
                return None
            del self.audio_files[audio_file_id]
            dependent = [
                record.id for record in self.transcriptions.values() if record.audio_file_id == audio_file_id
            ]
            for transcription_id in dependent:
                del self.transcriptions[transcription_id]
            self.audio_file_write_count += 1
            self.transcription_write_count += len(dependent)
            return audio_file

    # Transcriptions

    def create_transcription(self, *, owner_id: str, audio_file_id: str, language: str) -> TranscriptionRecord:
        now = datetime.now(UTC)
        with self._lock:
            audio_file = self.audio_files.get(audio_file_id)
            if audio_file is None or audio_file.user_id != owner_id:
                raise LookupError("Referenced audio file does not exist")
            transcription = TranscriptionRecord(
                id=str(uuid4()),
                audio_file_id=audio_file_id,
                user_id=owner_id,
                status=TranscriptionStatus.PENDING,
                language=language,
                created_at=now,
                updated_at=now,
            )
            self.transcriptions[transcription.id] = transcription
            self.transcription_write_count += 1
            return replace(transcription)

    def get_transcription(self, transcription_id: str) -> TranscriptionRecord | None:
        with self._lock:
            transcription = self.transcriptions.get(transcription_id)
            return replace(transcription) if transcription is not None else None

    def get_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        with self._lock:
            transcription = self.transcriptions.get(transcription_id)
            if transcription is None or transcription.user_id != owner_id:
                return None
            return replace(transcription)

    def get_transcription_for_audio_file(self, owner_id: str, audio_file_id: str) -> TranscriptionRecord | None:
        with self._lock:
            matches = [
                replace(record)
                for record in self.transcriptions.values()
                if record.audio_file_id == audio_file_id and record.user_id == owner_id
            ]
        if not matches:
            return None
        return max(matches, key=lambda record: record.created_at)

    def _owned_transcriptions(self, owner_id: str, status: TranscriptionStatus | None) -> list[TranscriptionRecord]:
        with self._lock:
            return [
                replace(record)
                for record in self.transcriptions.values()
                if record.user_id == owner_id and (status is None or record.status is status)
            ]

    def list_transcriptions_for_owner(
        self,
        owner_id: str,
        *,
        status: TranscriptionStatus | None,
        limit: int,
        offset: int,
    ) -> list[TranscriptionRecord]:
        owned = self._owned_transcriptions(owner_id, status)
        owned.sort(key=lambda record: record.created_at, reverse=True)
        return owned[offset : offset + limit]

    def count_transcriptions_for_owner(self, owner_id: str, *, status: TranscriptionStatus | None = None) -> int:
        return len(self._owned_transcriptions(owner_id, status))

    def count_transcriptions_for_audio_file(self, audio_file_id: str) -> int:
        with self._lock:
            return sum(1 for record in self.transcriptions.values() if record.audio_file_id == audio_file_id)

    def list_pending_transcriptions(self) -> list[TranscriptionRecord]:
        with self._lock:
            pending = [
                replace(record)
                for record in self.transcriptions.values()
                if record.status is TranscriptionStatus.PENDING
            ]
        pending.sort(key=lambda record: record.created_at)
        return pending

    def list_stale_processing_transcriptions(self, started_before: datetime) -> list[TranscriptionRecord]:
        with self._lock:
            stale = [
                replace(record)
                for record in self.transcriptions.values()
                if record.status is TranscriptionStatus.PROCESSING
                and record.processing_started_at is not None
                and record.processing_started_at < started_before
            ]
        stale.sort(key=lambda record: record.processing_started_at)
        return stale

    def transcription_stats_for_owner(self, owner_id: str) -> dict[str, Any]:
        owned = self._owned_transcriptions(owner_id, None)
        counts = {status: 0 for status in TranscriptionStatus}
        for record in owned:
            counts[record.status] += 1
        confidences = [record.confidence_score for record in owned if record.confidence_score is not None]
        return {
            "total": len(owned),
            "by_status": counts,
            "average_confidence": sum(confidences) / len(confidences) if confidences else None,
        }

    def update_transcription(
        self,
        transcription_id: str,
        changes: dict[str, Any],
        *,
        expected_status: TranscriptionStatus | None = None,
    ) -> TranscriptionRecord | None:
        unknown = set(changes) - TRANSCRIPTION_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transcription fields: {sorted(unknown)}")
        with self._lock:
            transcription = self.transcriptions.get(transcription_id)
            if transcription is None:
                return None
            if expected_status is not None and transcription.status is not expected_status:
                return None
            for key, value in changes.items():
                setattr(transcription, key, value)
            transcription.updated_at = datetime.now(UTC)
            self.transcription_write_count += 1
            return replace(transcription)

    def delete_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        with self._lock:
            transcription = self.transcriptions.get(transcription_id)
            if transcription is None or transcription.user_id != owner_id:
                return None
            del self.transcriptions[transcription_id]
            self.transcription_write_count += 1
            return transcription
