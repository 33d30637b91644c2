"""Application exception classes and handlers."""

from datetime import datetime
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error body shared by JSON responses and SSE events."""
        return {"status": self.status_code, "message": self.message, "code": self.code}


# --- Bad Request (400) ---


class BadRequestError(AppException):
    """Malformed request or missing required field."""

    def __init__(self, message: str, code: str = "BAD_REQUEST") -> None:
        super().__init__(message=message, code=code, status_code=400)


class InvalidMessageRoleError(AppException):
    """Operation is not allowed for the message role."""

    def __init__(self, message: str = "Can only edit user messages") -> None:
        super().__init__(message=message, code="INVALID_ROLE", status_code=400)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class ConversationNotFoundError(AppException):
    """Conversation not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Conversation not found",
            code="CONVERSATION_NOT_FOUND",
            status_code=404,
        )


class MessageNotFoundError(AppException):
    """Message not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Message not found",
            code="MESSAGE_NOT_FOUND",
            status_code=404,
        )


# --- Conflict (409) ---


class ConversationBusyError(AppException):
    """Another completion is already streaming for this conversation."""

    def __init__(self) -> None:
        super().__init__(
            message="A response is already being generated for this conversation",
            code="CONVERSATION_BUSY",
            status_code=409,
        )


# --- Rate Limit (429) ---


class RateLimitedError(AppException):
    """Admission denied by the per-identity rate limiter."""

    def __init__(self, reset_time: datetime) -> None:
        self.reset_time = reset_time
        super().__init__(
            message="Rate limit exceeded. Please try again later.",
            code="RATE_LIMITED",
            status_code=429,
        )

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["reset_time"] = self.reset_time.isoformat()
        return body


# --- Upstream / persistence (5xx) ---


class ProviderFailureError(AppException):
    """Completion provider stream failed or timed out."""

    def __init__(self, message: str = "Completion provider failed") -> None:
        super().__init__(message=message, code="PROVIDER_FAILURE", status_code=502)


class PersistenceFailureError(AppException):
    """Conversation store is unavailable."""

    def __init__(self, message: str = "Conversation store unavailable") -> None:
        super().__init__(message=message, code="PERSISTENCE_FAILURE", status_code=503)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitedError):
        remaining = exc.reset_time - datetime.now(exc.reset_time.tzinfo)
        retry_after = int(remaining.total_seconds())
        headers["Retry-After"] = str(max(retry_after, 0))
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers or None,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures in the common error shape."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "status": 422,
            "message": "Request validation failed",
            "code": "VALIDATION_ERROR",
            "errors": errors,
        },
    )
