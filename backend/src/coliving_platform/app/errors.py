"""Render domain and HTTP errors as ``{"error": message}`` JSON."""

import logging
import math
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from coliving_platform.domain.errors import (
    AgreementUnavailableError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _retry_after(reset_time: datetime) -> int:
    if reset_time.tzinfo is None:
        reset_time = reset_time.replace(tzinfo=timezone.utc)
    seconds = (reset_time - datetime.now(timezone.utc)).total_seconds()
    return max(1, math.ceil(seconds))


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        return _error(400, "Validation failed", details=details)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return _error(400, str(exc), details=exc.errors) if exc.errors else _error(400, str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return _error(400, str(exc))

    @app.exception_handler(AgreementUnavailableError)
    async def agreement_unavailable(request: Request, exc: AgreementUnavailableError):
        return _error(410, str(exc))

    @app.exception_handler(RateLimitExceededError)
    async def rate_limited(request: Request, exc: RateLimitExceededError):
        response = _error(429, str(exc), reset_time=exc.reset_time.isoformat())
        response.headers["Retry-After"] = str(_retry_after(exc.reset_time))
        return response

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")
