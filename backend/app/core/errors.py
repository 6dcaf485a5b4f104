"""Error handling and consistent error response format."""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from app.common.request_id import get_request_id
from app.core.app_exceptions import AppError
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Any | None = None
    request_id: str | None = None


class ErrorResponse(BaseModel):
    """Error envelope shared by every failing endpoint.

    Format: {"error": {code, message, details, request_id}}
    """

    error: ErrorBody


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            code=code,
            message=message,
            details=details,
            request_id=get_request_id(request),
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors (422)."""
    details: list[dict[str, Any]] = []
    for error in exc.errors():
        details.append(
            {
                "field": ".".join(str(loc) for loc in error.get("loc", [])),
                "issue": error.get("msg", "Validation error"),
                "type": error.get("type", "validation_error"),
            }
        )

    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Invalid request data",
        details,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    if isinstance(exc, AppError):
        headers = dict(exc.headers) if exc.headers else None
        return _error_response(
            request, exc.status_code, exc.code, exc.message, exc.details, headers
        )

    # Plain HTTPException (e.g. 404/405 raised by the router)
    details = None
    code = "HTTP_ERROR"
    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", code)
        message = exc.detail.get("message", "An error occurred")
        details = exc.detail.get("details")
    else:
        message = str(exc.detail)

    return _error_response(
        request, exc.status_code, code, message, details, getattr(exc, "headers", None)
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log persistence failures and answer with a generic 500."""
    logger.error(
        "Database error",
        extra={
            "request_id": get_request_id(request),
            "path": request.url.path,
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal server error occurred",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions (500)."""
    logger.error(
        "Unhandled exception",
        extra={"request_id": get_request_id(request), "path": request.url.path},
        exc_info=exc,
    )

    # In production, don't expose internal error details
    if settings.ENV == "prod":
        message = "An internal server error occurred"
        details = None
    else:
        message = str(exc)
        details = {"type": type(exc).__name__}

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        message,
        details,
    )
