"""SQLAlchemy-backed record store."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.domain.storage_location import ensure_storage_location
from app.db.models import AudioFileRow, SessionTokenRow, TranscriptionRow, UserRow
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


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _user(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        is_active=row.is_active,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _session(row: SessionTokenRow) -> SessionTokenRecord:
    return SessionTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=_as_utc(row.expires_at),
        created_at=_as_utc(row.created_at),
        is_revoked=row.is_revoked,
    )


def _audio_file(row: AudioFileRow) -> AudioFileRecord:
    return AudioFileRecord(
        id=row.id,
        user_id=row.user_id,
        original_filename=row.original_filename,
        stored_filename=row.stored_filename,
        file_size=row.file_size,
        mime_type=row.mime_type,
        storage_kind=StorageKind(row.storage_kind),
        file_path=row.file_path,
        object_key=row.object_key,
        bucket=row.bucket,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _transcription(row: TranscriptionRow) -> TranscriptionRecord:
    return TranscriptionRecord(
        id=row.id,
        audio_file_id=row.audio_file_id,
        user_id=row.user_id,
        status=TranscriptionStatus(row.status),
        language=row.language,
        transcription_text=row.transcription_text,
        confidence_score=row.confidence_score,
        processing_started_at=_as_utc(row.processing_started_at),
        processing_completed_at=_as_utc(row.processing_completed_at),
        error_message=row.error_message,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _column_values(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: value.value if isinstance(value, TranscriptionStatus) else value for key, value in changes.items()}


class SqlRecordStore(RecordStore):
    """Record store over any SQLAlchemy-supported database.

    Each method runs in its own short transaction. Status guards are pushed
    into the ``UPDATE ... WHERE`` clause so compare-and-swap stays atomic
    across processes.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # Users

    def create_user(self, *, email: str, password_hash: str, first_name: str, last_name: str) -> UserRecord:
        now = datetime.now(UTC)
        row = UserRow(
            id=str(uuid4()),
            email=email.strip().lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        try:
            with self._session_factory.begin() as session:
                session.add(row)
        except IntegrityError as exc:
            raise DuplicateRecordError("User with this email already exists") from exc
        return _user(row)

    def get_user(self, user_id: str) -> UserRecord | None:
        with self._session_factory() as session:
            row = session.scalar(select(UserRow).where(UserRow.id == user_id, UserRow.is_active.is_(True)))
            return _user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> UserRecord | None:
        with self._session_factory() as session:
            row = session.scalar(
                select(UserRow).where(UserRow.email == email.strip().lower(), UserRow.is_active.is_(True))
            )
            return _user(row) if row is not None else None

    def update_user(self, user_id: str, changes: dict[str, Any]) -> UserRecord | None:
        unknown = set(changes) - USER_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported user fields: {sorted(unknown)}")
        with self._session_factory.begin() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = datetime.now(UTC)
            session.flush()
            return _user(row)

    # Sessions

    def create_session(self, *, user_id: str, token_hash: str, expires_at: datetime) -> SessionTokenRecord:
        row = SessionTokenRow(
            id=str(uuid4()),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            is_revoked=False,
            created_at=datetime.now(UTC),
        )
        with self._session_factory.begin() as session:
            session.add(row)
        return _session(row)

    def get_session(self, token_hash: str) -> SessionTokenRecord | None:
        with self._session_factory() as session:
            row = session.scalar(select(SessionTokenRow).where(SessionTokenRow.token_hash == token_hash))
            return _session(row) if row is not None else None

    def revoke_session(self, token_hash: str) -> bool:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(SessionTokenRow).where(SessionTokenRow.token_hash == token_hash).values(is_revoked=True)
            )
            return result.rowcount > 0

    def revoke_user_sessions(self, user_id: str) -> int:
        with self._session_factory.begin() as session:
            result = session.execute(
                update(SessionTokenRow)
                .where(SessionTokenRow.user_id == user_id, SessionTokenRow.is_revoked.is_(False))
                .values(is_revoked=True)
            )
            return result.rowcount

    def purge_expired_sessions(self, now: datetime) -> int:
        with self._session_factory.begin() as session:
            result = session.execute(delete(SessionTokenRow).where(SessionTokenRow.expires_at < now))
            return result.rowcount

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
        row = AudioFileRow(
            id=str(uuid4()),
            user_id=user_id,
            original_filename=original_filename,
            stored_filename=stored_filename,
            file_size=file_size,
            mime_type=mime_type,
            storage_kind=storage_kind.value,
            file_path=file_path,
            object_key=object_key,
            bucket=bucket,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory.begin() as session:
            session.add(row)
        return _audio_file(row)

    def get_audio_file(self, audio_file_id: str) -> AudioFileRecord | None:
        with self._session_factory() as session:
            row = session.get(AudioFileRow, audio_file_id)
            return _audio_file(row) if row is not None else None

    def get_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        with self._session_factory() as session:
            row = session.scalar(
                select(AudioFileRow).where(AudioFileRow.id == audio_file_id, AudioFileRow.user_id == owner_id)
            )
            return _audio_file(row) if row is not None else None

    def list_audio_files_for_owner(self, owner_id: str, *, limit: int, offset: int) -> list[AudioFileRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(AudioFileRow)
                .where(AudioFileRow.user_id == owner_id)
                .order_by(AudioFileRow.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_audio_file(row) for row in rows]

    def audio_file_stats_for_owner(self, owner_id: str) -> dict[str, int]:
        with self._session_factory() as session:
            total_files, total_size = session.execute(
                select(func.count(AudioFileRow.id), func.coalesce(func.sum(AudioFileRow.file_size), 0)).where(
                    AudioFileRow.user_id == owner_id
                )
            ).one()
        return {"total_files": int(total_files), "total_size": int(total_size)}

    def delete_audio_file_for_owner(self, owner_id: str, audio_file_id: str) -> AudioFileRecord | None:
        with self._session_factory.begin() as session:
            row = session.scalar(
                select(AudioFileRow).where(AudioFileRow.id == audio_file_id, AudioFileRow.user_id == owner_id)
            )
            if row is None:
                return None
            record = _audio_file(row)
            # Explicit cascade; SQLite only honours ON DELETE with foreign keys enabled.
            session.execute(delete(TranscriptionRow).where(TranscriptionRow.audio_file_id == audio_file_id))
            session.delete(row)
            return record

    # Transcriptions

    def create_transcription(self, *, owner_id: str, audio_file_id: str, language: str) -> TranscriptionRecord:
        now = datetime.now(UTC)
        with self._session_factory.begin() as session:
            owned = session.scalar(
                select(AudioFileRow.id).where(AudioFileRow.id == audio_file_id, AudioFileRow.user_id == owner_id)
            )
            if owned is None:
                raise LookupError("Referenced audio file does not exist")
            row = TranscriptionRow(
                id=str(uuid4()),
                audio_file_id=audio_file_id,
                user_id=owner_id,
                status=TranscriptionStatus.PENDING.value,
                language=language,
                transcription_text=None,
                confidence_score=None,
                processing_started_at=None,
                processing_completed_at=None,
                error_message=None,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
        return _transcription(row)

    def get_transcription(self, transcription_id: str) -> TranscriptionRecord | None:
        with self._session_factory() as session:
            row = session.get(TranscriptionRow, transcription_id)
            return _transcription(row) if row is not None else None

    def get_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        with self._session_factory() as session:
            row = session.scalar(
                select(TranscriptionRow).where(
                    TranscriptionRow.id == transcription_id,
                    TranscriptionRow.user_id == owner_id,
                )
            )
            return _transcription(row) if row is not None else None

    def get_transcription_for_audio_file(self, owner_id: str, audio_file_id: str) -> TranscriptionRecord | None:
        with self._session_factory() as session:
            row = session.scalar(
                select(TranscriptionRow)
                .where(
                    TranscriptionRow.audio_file_id == audio_file_id,
                    TranscriptionRow.user_id == owner_id,
                )
                .order_by(TranscriptionRow.created_at.desc())
                .limit(1)
            )
            return _transcription(row) if row is not None else None

    def list_transcriptions_for_owner(
        self,
        owner_id: str,
        *,
        status: TranscriptionStatus | None,
        limit: int,
        offset: int,
    ) -> list[TranscriptionRecord]:
        query = select(TranscriptionRow).where(TranscriptionRow.user_id == owner_id)
        if status is not None:
            query = query.where(TranscriptionRow.status == status.value)
        query = query.order_by(TranscriptionRow.created_at.desc()).limit(limit).offset(offset)
        with self._session_factory() as session:
            return [_transcription(row) for row in session.scalars(query)]

    def count_transcriptions_for_owner(self, owner_id: str, *, status: TranscriptionStatus | None = None) -> int:
        query = select(func.count(TranscriptionRow.id)).where(TranscriptionRow.user_id == owner_id)
        if status is not None:
            query = query.where(TranscriptionRow.status == status.value)
        with self._session_factory() as session:
            return int(session.scalar(query) or 0)

    def count_transcriptions_for_audio_file(self, audio_file_id: str) -> int:
        with self._session_factory() as session:
            return int(
                session.scalar(
                    select(func.count(TranscriptionRow.id)).where(TranscriptionRow.audio_file_id == audio_file_id)
                )
                or 0
            )

    def list_pending_transcriptions(self) -> list[TranscriptionRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(TranscriptionRow)
                .where(TranscriptionRow.status == TranscriptionStatus.PENDING.value)
                .order_by(TranscriptionRow.created_at.asc())
            )
            return [_transcription(row) for row in rows]

    def list_stale_processing_transcriptions(self, started_before: datetime) -> list[TranscriptionRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(TranscriptionRow)
                .where(
                    TranscriptionRow.status == TranscriptionStatus.PROCESSING.value,
                    TranscriptionRow.processing_started_at < started_before,
                )
                .order_by(TranscriptionRow.processing_started_at.asc())
            )
            return [_transcription(row) for row in rows]

    def transcription_stats_for_owner(self, owner_id: str) -> dict[str, Any]:
        with self._session_factory() as session:
            rows = session.execute(
                select(TranscriptionRow.status, func.count(TranscriptionRow.id))
                .where(TranscriptionRow.user_id == owner_id)
                .group_by(TranscriptionRow.status)
            ).all()
            average = session.scalar(
                select(func.avg(TranscriptionRow.confidence_score)).where(
                    TranscriptionRow.user_id == owner_id,
                    TranscriptionRow.confidence_score.is_not(None),
                )
            )
        counts = {status: 0 for status in TranscriptionStatus}
        for status_value, count in rows:
            counts[TranscriptionStatus(status_value)] = int(count)
        return {
            "total": sum(counts.values()),
            "by_status": counts,
            "average_confidence": float(average) if average is not None else None,
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
        values = _column_values(changes)
        values["updated_at"] = datetime.now(UTC)

        statement = update(TranscriptionRow).where(TranscriptionRow.id == transcription_id)
        if expected_status is not None:
            statement = statement.where(TranscriptionRow.status == expected_status.value)

        with self._session_factory.begin() as session:
            result = session.execute(statement.values(**values).execution_options(synchronize_session=False))
            if result.rowcount == 0:
                return None
            row = session.get(TranscriptionRow, transcription_id, populate_existing=True)
            return _transcription(row) if row is not None else None

    def delete_transcription_for_owner(self, owner_id: str, transcription_id: str) -> TranscriptionRecord | None:
        with self._session_factory.begin() as session:
            row = session.scalar(
                select(TranscriptionRow).where(
                    TranscriptionRow.id == transcription_id,
                    TranscriptionRow.user_id == owner_id,
                )
            )
            if row is None:
                return None
            record = _transcription(row)
            session.delete(row)
            return record
