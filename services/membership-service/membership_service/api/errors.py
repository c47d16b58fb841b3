"""Translation of service failures into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.errors import (
    ConflictError,
    InvariantViolationError,
    MembershipError,
    NotFoundError,
    OperationCancelledError,
    ValidationError,
    WriteFailedError,
)

logger = logging.getLogger(__name__)

# nginx convention for a request abandoned by the client
HTTP_499_CLIENT_CLOSED_REQUEST = 499

_STATUS_BY_ERROR: dict[type[MembershipError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvariantViolationError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_409_CONFLICT,
    WriteFailedError: status.HTTP_400_BAD_REQUEST,
    OperationCancelledError: HTTP_499_CLIENT_CLOSED_REQUEST,
}


def status_for_error(exc: MembershipError) -> int:
    """Return the status of the nearest mapped base class, 400 when none is mapped."""
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[error_type]
    return status.HTTP_400_BAD_REQUEST


def add_error_handlers(app: FastAPI) -> None:
    """Register handlers mapping domain errors and malformed requests to JSON responses."""

    @app.exception_handler(MembershipError)
    async def membership_error_handler(request: Request, exc: MembershipError) -> JSONResponse:
        status_code = status_for_error(exc)
        logger.info(
            "%s %s rejected with %s: %s", request.method, request.url.path, status_code, exc
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(item) for item in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        logger.info("invalid request to %s: %s", request.url.path, "; ".join(messages))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "; ".join(messages) or "invalid request"},
        )
