"""Application-specific exceptions for consistent error handling.

Every authentication failure maps onto one of the classes below. Handlers
in ``app.core.errors`` turn them into the shared error envelope.
"""

from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Application error with standardized error code."""

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    code_default: str = "BAD_REQUEST"
    message_default: str = "Bad request"

    def __init__(
        self,
        status_code: int | None = None,
        code: str | None = None,
        message: str | None = None,
        details: dict[str, Any] | list[Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        status_code = status_code or self.status_code_default
        code = code or self.code_default
        message = message or self.message_default
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details,
            },
            headers=headers,
        )
        self.code = code
        self.message = message
        self.details = details


class InvalidCredentials(AppError):
    """Unknown account, wrong password, or an account that may not log in."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = "INVALID_CREDENTIALS"
    message_default = "Invalid email or password"


class Unauthenticated(AppError):
    """Missing, invalid, expired or revoked session or pending token."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    code_default = "UNAUTHENTICATED"
    message_default = "Authentication required"


class InvalidCode(AppError):
    """A TOTP, backup or recovery code did not match."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = "INVALID_CODE"
    message_default = "Invalid verification code"


class AccountInactive(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code_default = "ACCOUNT_INACTIVE"
    message_default = "Account is inactive"


class Forbidden(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN
    code_default = "FORBIDDEN"
    message_default = "You do not have permission to perform this action"


class AlreadyUsed(AppError):
    """A single-use code (backup code or TOTP step) was already consumed."""

    status_code_default = status.HTTP_409_CONFLICT
    code_default = "ALREADY_USED"
    message_default = "This code has already been used"


class RateLimited(AppError):
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
    code_default = "RATE_LIMITED"
    message_default = "Too many requests. Try again later."

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        super().__init__(
            message=message,
            details={"retry_after_seconds": retry_after_seconds},
            headers={"Retry-After": str(retry_after_seconds)},
        )
        self.retry_after_seconds = retry_after_seconds


class ValidationFailed(AppError):
    """Request is well-formed but not valid for the account's current state."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    code_default = "VALIDATION_ERROR"
    message_default = "Invalid request"


class Conflict(AppError):
    status_code_default = status.HTTP_409_CONFLICT
    code_default = "CONFLICT"
    message_default = "Resource already exists"
