"""User profile routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.routes.dependencies import get_authenticated_principal, get_user_service
from app.schemas.auth import AuthPrincipal, ChangePasswordRequest, ProfileUpdateResponse, UpdateProfileRequest, User
from app.schemas.base import MessageResponse
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, UnauthorizedError, ValidationErrorResponse
from app.services.users import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get(
    "/profile",
    response_model=User,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def get_profile(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> User:
    return service.get_profile(user_id=principal.user_id)


@router.put(
    "/profile",
    response_model=ProfileUpdateResponse,
    responses={400: {"model": ValidationErrorResponse}, 401: {"model": UnauthorizedError}},
)
def update_profile(
    payload: UpdateProfileRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> ProfileUpdateResponse:
    return service.update_profile(user_id=principal.user_id, payload=payload)


@router.put(
    "/change-password",
    response_model=MessageResponse,
    responses={400: {"model": ValidationErrorResponse | ErrorResponse}, 401: {"model": UnauthorizedError}},
)
def change_password(
    payload: ChangePasswordRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> MessageResponse:
    return service.change_password(user_id=principal.user_id, payload=payload)


@router.delete("/deactivate", response_model=MessageResponse, responses={401: {"model": UnauthorizedError}})
def deactivate(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[UserService, Depends(get_user_service)],
) -> MessageResponse:
    return service.deactivate(user_id=principal.user_id)
