"""Global exception handlers for FastAPI.

Maps the ledger error taxonomy onto HTTP status codes:

    LedgerValidationError     400
    NotFoundError             404
    DomainStateError          409  (details.current_status)
    ConcurrencyConflictError  503  (retry budget exhausted; safe to retry)
    RequestValidationError    422
    anything else             500
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    ConcurrencyConflictError,
    DomainStateError,
    InvalidAmountError,
    LedgerValidationError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _json_error(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code, message, details=details, request_id=_request_id(request)
        ).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(LedgerValidationError)
    async def ledger_validation_handler(request: Request, exc: LedgerValidationError):
        code = ErrorCodes.INVALID_AMOUNT if isinstance(exc, InvalidAmountError) else ErrorCodes.INVALID_REQUEST
        return _json_error(request, 400, code, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _json_error(request, 404, ErrorCodes.NOT_FOUND, str(exc))

    @app.exception_handler(DomainStateError)
    async def domain_state_handler(request: Request, exc: DomainStateError):
        return _json_error(
            request, 409, ErrorCodes.INVALID_STATUS_TRANSITION, str(exc),
            details={"current_status": exc.current_status},
        )

    @app.exception_handler(ConcurrencyConflictError)
    async def conflict_handler(request: Request, exc: ConcurrencyConflictError):
        logger.warning("Concurrency conflict surfaced to client: %s", exc)
        return _json_error(request, 503, ErrorCodes.CONCURRENCY_CONFLICT, str(exc))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _json_error(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _json_error(request, 422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _json_error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
