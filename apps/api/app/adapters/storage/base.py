"""File storage interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import re
from typing import Any
from uuid import uuid4

from app.domain.storage_location import ensure_storage_location
from app.schemas.audio_file import StorageKind

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Where a stored binary lives; exactly one location form is set."""

    storage_kind: StorageKind
    stored_filename: str
    file_path: str | None = None
    object_key: str | None = None
    bucket: str | None = None

    def __post_init__(self) -> None:
        ensure_storage_location(
            self.storage_kind,
            file_path=self.file_path,
            object_key=self.object_key,
            bucket=self.bucket,
        )

    @classmethod
    def from_record(cls, record: Any) -> StoredObject:
        """Build the location of an already persisted audio file record."""
        return cls(
            storage_kind=record.storage_kind,
            stored_filename=record.stored_filename,
            file_path=record.file_path,
            object_key=record.object_key,
            bucket=record.bucket,
        )


def unique_filename(original_filename: str) -> str:
    """Collision-free name that keeps the original extension."""
    name = _UNSAFE_FILENAME_CHARS.sub("_", original_filename.strip()).strip("._") or "audio"
    stem, dot, extension = name.rpartition(".")
    if not dot:
        stem, extension = name, ""
    suffix = f".{extension.lower()}" if extension else ""
    return f"{uuid4().hex}-{stem[:80]}{suffix}"


class FileStorage(ABC):
    """Provider-neutral binary storage."""

    @abstractmethod
    def store(self, content: bytes, *, user_id: str, original_filename: str, mime_type: str) -> StoredObject:
        """Persist ``content`` and return its location."""

    @abstractmethod
    def resolve_download_url(self, location: StoredObject, ttl_seconds: int) -> str | None:
        """Return a URL the binary can be fetched from for ``ttl_seconds``.

        ``None`` means the binary has no URL of its own and the API must serve
        the bytes itself.
        """

    @abstractmethod
    def delete(self, location: StoredObject) -> None:
        """Remove the binary; raise ``StorageError`` when it cannot be removed."""


__all__ = ["FileStorage", "StoredObject", "unique_filename"]
