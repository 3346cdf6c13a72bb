from __future__ import annotations

import structlog
from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    AuthenticationRequiredError,
    ConflictError,
    ForbiddenError,
    InputValidationError,
    IntegrityViolationError,
    NotFoundError,
    StorefrontError,
    UpstreamFailureError,
)

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR: tuple[tuple[type[StorefrontError], int], ...] = (
    (AuthenticationRequiredError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InputValidationError, status.HTTP_400_BAD_REQUEST),
    (IntegrityViolationError, status.HTTP_400_BAD_REQUEST),
    (UpstreamFailureError, status.HTTP_502_BAD_GATEWAY),
)


def as_http_exception(exc: StorefrontError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            detail: dict[str, str] = {"code": exc.code}
            if exc.message:
                detail["message"] = exc.message
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"code": "E_INTERNAL"})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "code": "E_VALIDATION",
                "message": f"{location}: {first.get('msg', 'invalid value')}" if location else "invalid request",
            }
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "api_unhandled_error",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"code": "E_INTERNAL"}},
    )
