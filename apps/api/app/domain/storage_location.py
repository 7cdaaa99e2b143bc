"""Audio file location rules."""

from app.schemas.audio_file import StorageKind


def ensure_storage_location(
    storage_kind: StorageKind,
    *,
    file_path: str | None,
    object_key: str | None,
    bucket: str | None,
) -> None:
    """Exactly one location representation is authoritative for a stored file."""
    if storage_kind is StorageKind.REMOTE:
        if not (object_key or "").strip() or not (bucket or "").strip():
            raise ValueError("remote audio files require both an object key and a bucket")
        if file_path:
            raise ValueError("remote audio files must not carry a local file path")
        return

    if not (file_path or "").strip():
        raise ValueError("local audio files require a file path")
    if object_key or bucket:
        raise ValueError("local audio files must not carry an object key or bucket")
