"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses of the form
``{"msg": ..., "code": ...}`` plus any retry metadata the error carries.

Non-AppError exceptions are logged and returned as 500s; the exception text
is only included in development.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details
        self.extra = extra or {}

    def to_dict(self) -> dict:
        payload: dict = {"msg": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, errors: Optional[list[str]] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or []
        if self.errors:
            self.extra["errors"] = self.errors


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


# ── Credential & session errors ──────────────────────────────────────────────


class WeakPassword(ValidationError):
    error_code = "weak_password"

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Password requirements not met", errors=errors)


class DuplicateAccount(AppError):
    # Duplicates answer 400, not 409
    status_code = 400
    error_code = "duplicate_account"

    def __init__(self, message: str = "User already exists") -> None:
        super().__init__(message)


class NoPendingRegistration(AppError):
    status_code = 400
    error_code = "no_pending_registration"

    def __init__(self, message: str = "Invalid or expired verification session") -> None:
        super().__init__(message)


class OtpExpired(AppError):
    status_code = 400
    error_code = "otp_expired"

    def __init__(self, message: str = "OTP has expired. Please register again.") -> None:
        super().__init__(message)


class InvalidOtp(AppError):
    status_code = 400
    error_code = "invalid_otp"

    def __init__(self, message: str = "Invalid OTP") -> None:
        super().__init__(message)


class InvalidCredentials(AppError):
    status_code = 400
    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)


class EmailNotVerified(ForbiddenError):
    error_code = "email_not_verified"

    def __init__(self, message: str = "Please verify your email first") -> None:
        super().__init__(message, extra={"isEmailVerified": False})


class NoSession(AuthenticationError):
    error_code = "no_session"

    def __init__(self, message: str = "No refresh token found") -> None:
        super().__init__(message)


class InvalidSession(ForbiddenError):
    error_code = "invalid_session"

    def __init__(self, message: str = "Invalid refresh token") -> None:
        super().__init__(message)


class TooManyAttempts(RateLimitError):
    error_code = "too_many_attempts"

    def __init__(self, lock_until: datetime) -> None:
        super().__init__(
            "Too many reset attempts. Please try again later.",
            extra={"lockUntil": lock_until.isoformat()},
        )
        self.lock_until = lock_until


class RateLimited(RateLimitError):
    def __init__(self, message: str, *, remaining_ms: int, attempts_remaining: int) -> None:
        super().__init__(
            message,
            extra={
                "remainingTime": remaining_ms,
                "attemptsRemaining": attempts_remaining,
            },
        )
        self.remaining_ms = remaining_ms
        self.attempts_remaining = attempts_remaining


class InvalidOrExpiredToken(AppError):
    status_code = 400
    error_code = "invalid_or_expired_token"

    def __init__(self, message: str = "Invalid or expired reset token") -> None:
        super().__init__(message)


class EmailDispatchFailed(AppError):
    status_code = 502
    error_code = "email_dispatch_failed"

    def __init__(self, message: str = "Failed to send email. Please try again.") -> None:
        super().__init__(message)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            location = ".".join(str(part) for part in err.get("loc", ())[1:])
            errors.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
        return JSONResponse(
            status_code=400,
            content={"msg": "Invalid request", "code": "validation_error", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        content: dict = {"msg": "Something went wrong!", "code": "internal_error"}
        settings = getattr(request.app.state, "settings", None)
        if settings is not None and settings.is_development:
            content["error"] = str(exc)
        return JSONResponse(status_code=500, content=content)
