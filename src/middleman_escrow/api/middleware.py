"""HTTP middleware: correlation ids, domain-error translation, CORS.

Starlette applies middleware in reverse registration order, so a request
passes through RequestIDMiddleware first and CORS last.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from middleman_escrow.domain.exceptions import (
    CodeAlreadyUsedError,
    CodeExpiredError,
    CodeMismatchError,
    CodeNotFoundError,
    DuplicateOperationError,
    EscrowError,
    MarketDataUnavailableError,
    NothingToWithdrawError,
    RequestNotFoundError,
    StorageUnavailableError,
    UnauthorizedPartyError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RETRY_AFTER_SECONDS = "5"
_MAX_REQUEST_ID_LENGTH = 128

# First matching class wins.
_STATUS_BY_ERROR: tuple[tuple[type[EscrowError], int], ...] = (
    (RequestNotFoundError, 404),
    (CodeNotFoundError, 404),
    (CodeExpiredError, 410),
    (CodeAlreadyUsedError, 409),
    (CodeMismatchError, 400),
    (UnauthorizedPartyError, 403),
    (NothingToWithdrawError, 422),
    (DuplicateOperationError, 409),
    (StorageUnavailableError, 503),
    (MarketDataUnavailableError, 503),
)


def status_for(exc: EscrowError) -> int:
    """HTTP status code for a domain error (400 for unmapped ones)."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 400


def error_response(exc: EscrowError) -> JSONResponse:
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a correlation id to the log context and echo it on the response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        if not incoming or len(incoming) > _MAX_REQUEST_ID_LENGTH:
            incoming = str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=incoming, method=request.method, path=request.url.path
        )

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = incoming
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Render EscrowError as ``{"error", "message"}`` JSON; anything else is a 500."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except EscrowError as exc:
            response = error_response(exc)
            if response.status_code >= 500:
                logger.error(
                    "http.service_unavailable", error_code=exc.code, detail=getattr(exc, "detail", "")
                )
            else:
                logger.info("http.domain_error", error_code=exc.code, status_code=response.status_code)
            return response
        except Exception:
            logger.exception("http.unhandled_error")
            return JSONResponse(
                status_code=500,
                content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
            )


def setup_middleware(app: FastAPI, allowed_origins: list[str] | None = None) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
