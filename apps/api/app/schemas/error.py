"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.transcription import TranscriptionStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class FieldError(BaseModel):
    field: str
    message: str


class ValidationErrorDetails(BaseModel):
    fields: list[FieldError]


class ValidationErrorResponse(BaseModel):
    code: Literal["VALIDATION_ERROR"]
    message: str
    details: ValidationErrorDetails


class UnauthorizedError(BaseModel):
    code: Literal["UNAUTHORIZED"]
    message: str


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class FileTooLargeErrorDetails(BaseModel):
    max_bytes: int


class FileTooLargeError(BaseModel):
    code: Literal["FILE_TOO_LARGE"]
    message: str
    details: FileTooLargeErrorDetails


class RetryStateConflictErrorDetails(BaseModel):
    current_status: TranscriptionStatus


class RetryStateConflictError(BaseModel):
    code: Literal["RETRY_NOT_ALLOWED_STATE"]
    message: str
    details: RetryStateConflictErrorDetails
