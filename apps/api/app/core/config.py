"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_AUDIO_TYPES = [
    "audio/mpeg",
    "audio/wav",
    "audio/x-wav",
    "audio/mp3",
    "audio/mp4",
    "audio/aac",
    "audio/ogg",
    "audio/webm",
    "audio/flac",
]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["session", "mock"] = "session"
    jwt_secret: str = "default-secret-change-this"
    jwt_algorithm: str = "HS256"
    session_ttl_minutes: int = Field(default=7 * 24 * 60, ge=1)
    password_hash_rounds: int = Field(default=12, ge=4, le=31)
    session_purge_interval_seconds: float = Field(default=3600.0, gt=0)

    database_url: str | None = None

    upload_dir: str = "uploads"
    temp_dir: str | None = None
    max_upload_bytes: int = Field(default=20 * 1024 * 1024, ge=1)
    allowed_audio_types: list[str] = Field(default_factory=lambda: list(_DEFAULT_AUDIO_TYPES))
    default_language: str = "es"

    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_key_prefix: str = "audio-files"
    signed_url_ttl_seconds: int = Field(default=3600, ge=1)

    speech_provider: Literal["openai", "mock"] = "openai"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    whisper_model: str = "whisper-1"
    whisper_max_bytes: int = Field(default=25 * 1024 * 1024, ge=1)
    default_confidence: float = Field(default=0.95, ge=0.0, le=1.0)

    transcription_workers: int = Field(default=2, ge=1)
    transcription_timeout_seconds: float = Field(default=600.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="VOCALI_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
