"""Bearer token verification contract."""

from abc import ABC, abstractmethod

from app.schemas.auth import AuthPrincipal


class AuthVerificationError(Exception):
    """Token rejected; the message is safe to return to the caller."""


class TokenVerifier(ABC):
    @abstractmethod
    def verify_token(self, token: str) -> AuthPrincipal:
        """Resolve a bearer token to the user it was issued for.

        Implementations raise ``AuthVerificationError`` for malformed, expired
        or revoked tokens and for tokens of deactivated accounts.
        """


__all__ = ["AuthVerificationError", "TokenVerifier"]
