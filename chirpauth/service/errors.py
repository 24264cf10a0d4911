from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines both an HTTP status_code and a stable
    error_code:
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - validation_error (400)
    - conflict (409)
    - server_error (500)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"


class CredentialError(AuthenticationError):
    """A presented credential was rejected.

    ``reason`` names the failure kind for logs. It is never sent to clients;
    the facade collapses every kind into a generic failure first.
    """

    reason: str = "invalid_credential"

    def __init__(self, message: str | None = None, **kwargs) -> None:
        super().__init__(message or self.reason.replace("_", " "), **kwargs)


class MissingCredentialError(CredentialError):
    """No usable bearer credential was presented."""
    reason = "missing_credential"


class MalformedCredentialError(CredentialError):
    """Token structure or claims could not be parsed."""
    reason = "malformed_credential"


class SignatureMismatchError(CredentialError):
    """Token signature does not match the configured secret."""
    reason = "signature_mismatch"


class ExpiredCredentialError(CredentialError):
    """Token or refresh record is past its expiry."""
    reason = "expired_credential"


class RevokedCredentialError(CredentialError):
    """Refresh record has been revoked."""
    reason = "revoked_credential"


class UnknownCredentialError(CredentialError):
    """Refresh token has no record in the store."""
    reason = "unknown_credential"


class PasswordMismatchError(CredentialError):
    """Plaintext does not verify against the stored hash."""
    reason = "password_mismatch"


class AuthenticationFailure(AuthenticationError):
    """Login failed. Unknown email and wrong password are indistinguishable."""

    def __init__(self, cause: CredentialError | None = None) -> None:
        super().__init__("Incorrect email or password")
        self.cause = cause


class AuthorizationFailure(AuthenticationError):
    """A bearer credential could not be authorized."""

    def __init__(self, cause: CredentialError | None = None) -> None:
        super().__init__("unauthorized")
        self.cause = cause


class ServerError(ServiceError):
    """Internal server error (500)."""
    status_code = 500
    error_code = "server_error"


class HashingFailure(ServerError):
    """Password hashing or token generation failed internally."""


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "CredentialError",
    "MissingCredentialError",
    "MalformedCredentialError",
    "SignatureMismatchError",
    "ExpiredCredentialError",
    "RevokedCredentialError",
    "UnknownCredentialError",
    "PasswordMismatchError",
    "AuthenticationFailure",
    "AuthorizationFailure",
    "ServerError",
    "HashingFailure",
]
