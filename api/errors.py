"""Global exception handlers for FastAPI.

Maps the domain exception taxonomy to HTTP status codes in one place.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import (
    AccountLockedError,
    CsrfValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    PasswordNotSetError,
    RateLimitedError,
    SessionExpiredError,
    WeakPasswordError,
)
from core.exceptions import (
    DomainError,
    GiftCardAlreadyRedeemedError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
ERROR_MAP: list[tuple[type[DomainError], int, str]] = [
    (WeakPasswordError, 400, ErrorCodes.WEAK_PASSWORD),
    (GiftCardAlreadyRedeemedError, 400, ErrorCodes.GIFT_CARD_ALREADY_REDEEMED),
    (InsufficientBalanceError, 400, ErrorCodes.INSUFFICIENT_BALANCE),
    (ValidationError, 400, ErrorCodes.VALIDATION_ERROR),
    (InvalidCredentialsError, 401, ErrorCodes.INVALID_CREDENTIALS),
    (PasswordNotSetError, 401, ErrorCodes.PASSWORD_NOT_SET),
    (InvalidTokenError, 401, ErrorCodes.INVALID_TOKEN),
    (SessionExpiredError, 401, ErrorCodes.SESSION_EXPIRED),
    (CsrfValidationError, 403, ErrorCodes.CSRF_INVALID),
    (NotFoundError, 404, ErrorCodes.NOT_FOUND),
    (AccountLockedError, 423, ErrorCodes.ACCOUNT_LOCKED),
    (RateLimitedError, 429, ErrorCodes.RATE_LIMITED),
]


def status_for(exc: DomainError) -> tuple[int, str]:
    """HTTP status and error code for a domain exception."""
    for exc_type, status_code, code in ERROR_MAP:
        if isinstance(exc, exc_type):
            return status_code, code
    return 400, ErrorCodes.INVALID_REQUEST


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def domain_error_response(request: Request, exc: DomainError) -> JSONResponse:
    status_code, code = status_for(exc)
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
        if exc.limit is not None:
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"

    return JSONResponse(
        status_code=status_code,
        content=error_response(
            code,
            exc.message,
            data=exc.details,
            request_id=_request_id(request),
        ).model_dump(mode="json"),
        headers=headers or None,
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        return domain_error_response(request, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST,
                str(exc),
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                "Invalid request body",
                data={"errors": [err.get("msg", "") for err in exc.errors()]},
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )
