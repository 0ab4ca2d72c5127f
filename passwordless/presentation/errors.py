"""
Maps domain errors to HTTP responses.

Verification outcomes are ordinary client-facing answers; backend and
delivery failures become 5xx. Anything that is not a DomainError bubbles up
as a 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from passwordless.domain.errors import (
    AttemptsExhausted,
    Canceled,
    DeadlineExceeded,
    DeliveryError,
    DomainError,
    InvalidCode,
    InvalidParameter,
    StorageError,
    TokenExpired,
    TokenNotFound,
)
from passwordless.schemas.responses import ErrorOut

logger = logging.getLogger(__name__)

# most specific first: DeadlineExceeded is a Canceled
_STATUS: tuple[tuple[type[DomainError], int, str], ...] = (
    (TokenNotFound, 404, "token_not_found"),
    (TokenExpired, 410, "token_expired"),
    (InvalidCode, 401, "invalid_code"),
    (AttemptsExhausted, 429, "attempts_exhausted"),
    (InvalidParameter, 400, "invalid_parameter"),
    (DeliveryError, 502, "delivery_failed"),
    (StorageError, 503, "storage_unavailable"),
    (DeadlineExceeded, 504, "deadline_exceeded"),
    (Canceled, 499, "canceled"),
)


def status_for(exc: DomainError) -> tuple[int, str]:
    for kind, status_code, error_code in _STATUS:
        if isinstance(exc, kind):
            return status_code, error_code
    return 500, "internal_error"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        status_code, error_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "request failed",
                extra={"path": request.url.path, "error_code": error_code},
                exc_info=exc,
            )
        body = ErrorOut(
            error=str(exc),
            code=error_code,
            attempts_remaining=getattr(exc, "attempts_remaining", None),
        )
        return JSONResponse(
            status_code=status_code, content=body.model_dump(exclude_none=True)
        )
