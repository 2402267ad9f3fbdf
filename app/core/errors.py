"""
Central error handling for the attendance backend

Domain errors are HTTPException subclasses carrying a stable machine-readable
``kind`` so clients can tell a conflict (refresh and retry later) from a
validation failure (fix the input).
"""
import logging
import traceback
from typing import Any, Optional, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException

logger = logging.getLogger(__name__)

KIND_VALIDATION = "validation_error"
KIND_CONFLICT = "conflict"
KIND_AUTHORIZATION = "authorization_error"
KIND_NOT_FOUND = "not_found"
KIND_UNAUTHORIZED = "unauthorized"
KIND_TRANSIENT = "transient"
KIND_INTERNAL = "internal_error"

_KIND_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: KIND_VALIDATION,
    status.HTTP_401_UNAUTHORIZED: KIND_UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: KIND_AUTHORIZATION,
    status.HTTP_404_NOT_FOUND: KIND_NOT_FOUND,
    status.HTTP_409_CONFLICT: KIND_CONFLICT,
    status.HTTP_422_UNPROCESSABLE_ENTITY: KIND_VALIDATION,
    status.HTTP_503_SERVICE_UNAVAILABLE: KIND_TRANSIENT,
}

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


class AttendanceError(HTTPException):
    """Base class for domain errors: an HTTP status plus a stable error kind."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = KIND_VALIDATION

    def __init__(self, detail: Any = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=type(self).status_code, detail=detail, headers=headers)


class ValidationFailed(AttendanceError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = KIND_VALIDATION


class ConflictError(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    kind = KIND_CONFLICT


class RequestAlreadyProcessed(ConflictError):
    """Deciding a request that is no longer open. Reported as 400 for existing clients."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = KIND_AUTHORIZATION


class NotFoundError(AttendanceError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = KIND_NOT_FOUND


class MachineUnauthorized(AttendanceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = KIND_UNAUTHORIZED


class TransientError(AttendanceError):
    """Raised once transaction retries are exhausted; safe for the caller to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = KIND_TRANSIENT


def error_kind(exc: HTTPException) -> str:
    kind = getattr(exc, "kind", None)
    if kind:
        return kind
    return _KIND_BY_STATUS.get(exc.status_code, KIND_INTERNAL if exc.status_code >= 500 else KIND_VALIDATION)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    headers = dict(_CORS_HEADERS)
    if exc.headers:
        headers.update(exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "status_code": exc.status_code,
            "kind": error_kind(exc),
            "detail": exc.detail,
            "path": str(request.url.path)
        },
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError with consistent JSON response format

    Does not leak internal validation details in production.
    """
    from app.core.config import settings

    # In production, return generic error message
    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "status_code": 422,
                "kind": KIND_VALIDATION,
                "detail": "Validation error: Invalid request data",
                "path": str(request.url.path)
            }
        )

    # ctx may hold exception instances (e.g. ValueError); stringify for JSON
    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "status_code": 422,
            "kind": KIND_VALIDATION,
            "detail": "Validation error",
            "errors": errors,
            "path": str(request.url.path)
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with consistent JSON response format

    Does not leak internal error details in production.
    """
    from app.core.config import settings

    logger.error("Unhandled exception: %s", exc, exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "status_code": 500,
                "kind": KIND_INTERNAL,
                "detail": "Internal server error",
                "path": str(request.url.path)
            },
            headers=_CORS_HEADERS,
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "status_code": 500,
            "kind": KIND_INTERNAL,
            "detail": str(exc),
            "path": str(request.url.path),
            "traceback": traceback.format_exc() if settings.APP_ENV == "local" else None
        },
        headers=_CORS_HEADERS,
    )
