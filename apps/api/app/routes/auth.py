"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.routes.dependencies import get_auth_service, get_authenticated_principal
from app.schemas.auth import AuthPrincipal, AuthResponse, LoginRequest, RegisterRequest, User
from app.schemas.base import MessageResponse
from app.schemas.error import ErrorResponse, NoLeakNotFoundError, UnauthorizedError, ValidationErrorResponse
from app.services.auth import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ValidationErrorResponse | ErrorResponse}},
)
def register(
    payload: RegisterRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> AuthResponse:
    return service.register(payload)


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={400: {"model": ValidationErrorResponse}, 401: {"model": UnauthorizedError}},
)
def login(
    payload: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> AuthResponse:
    return service.login(payload)


@router.post("/logout", response_model=MessageResponse, responses={401: {"model": UnauthorizedError}})
def logout(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    return service.logout(principal)


@router.post("/logout-all", response_model=MessageResponse, responses={401: {"model": UnauthorizedError}})
def logout_all(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    return service.logout_all(principal)


@router.get(
    "/me",
    response_model=User,
    responses={401: {"model": UnauthorizedError}, 404: {"model": NoLeakNotFoundError}},
)
def me(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    return service.me(principal)
