"""Authentication and user schemas."""

from datetime import datetime
import re
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field

from app.schemas.base import ApiModel

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]")
_NAME_PATTERN = re.compile(r"^[a-zA-ZáéíóúüñÁÉÍÓÚÜÑ\s]+$")


def _check_email(value: str) -> str:
    normalized = value.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError("Please provide a valid email address")
    return normalized


def _check_password_strength(value: str) -> str:
    if not _PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    return value


def _check_name(value: str) -> str:
    if not _NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters and spaces")
    return value


EmailAddress = Annotated[str, Field(min_length=3, max_length=255), AfterValidator(_check_email)]
StrongPassword = Annotated[str, Field(min_length=8, max_length=128), AfterValidator(_check_password_strength)]
PersonName = Annotated[str, Field(min_length=2, max_length=100), AfterValidator(_check_name)]


class AuthPrincipal(BaseModel):
    """Normalized authenticated principal used by business services."""

    user_id: str = Field(min_length=1)
    role: str = Field(default="user", min_length=1)
    token: str | None = None


class RegisterRequest(ApiModel):
    email: EmailAddress
    password: StrongPassword
    first_name: PersonName
    last_name: PersonName


class LoginRequest(ApiModel):
    email: EmailAddress
    password: str = Field(min_length=1)


class UpdateProfileRequest(ApiModel):
    first_name: PersonName | None = None
    last_name: PersonName | None = None


class ChangePasswordRequest(ApiModel):
    current_password: str = Field(min_length=1)
    new_password: StrongPassword


class User(ApiModel):
    id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class AuthResponse(ApiModel):
    message: str
    user: User
    token: str


class ProfileUpdateResponse(ApiModel):
    message: str
    user: User
