"""
Error Handling for the SellCheck API

Maps the SellCheckError hierarchy onto HTTP responses:

    ValidationError          400
    UnauthorizedError        401
    RateLimitError           429 (+ Retry-After)
    ExternalServiceError     502
    SourceUnavailableError   503
    ConfigurationError       503
    anything else            500 (generic body, details only in debug mode)
"""

import logging
import traceback
from typing import Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .exceptions import (
    SellCheckError,
    ExternalServiceError,
    ValidationError,
    UnauthorizedError,
    RateLimitError,
    SourceUnavailableError,
    ConfigurationError,
)

logger = logging.getLogger(__name__)

# Checked in order; first isinstance match wins
STATUS_CODES: Tuple[Tuple[Type[SellCheckError], int], ...] = (
    (ValidationError, 400),
    (UnauthorizedError, 401),
    (RateLimitError, 429),
    (SourceUnavailableError, 503),
    (ConfigurationError, 503),
    (ExternalServiceError, 502),
)


# ============================================================
# Error Response Helpers
# ============================================================

def get_status_code(exc: SellCheckError) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def _response_headers(error: SellCheckError) -> Optional[Dict[str, str]]:
    retry_after = error.details.get("retry_after_seconds")
    if isinstance(error, RateLimitError) and retry_after:
        return {"Retry-After": str(retry_after)}
    return None


def create_error_response(
    error: SellCheckError,
    status_code: int = 500,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Standard body: {error, message, details?, path?, method?}"""
    body = error.to_dict()
    if request:
        body["path"] = str(request.url.path)
        body["method"] = request.method

    return JSONResponse(
        status_code=status_code,
        content=body,
        headers=_response_headers(error),
    )


# ============================================================
# Exception Handlers
# ============================================================

async def handle_sellcheck_exception(
    request: Request,
    exc: SellCheckError,
) -> JSONResponse:
    status_code = get_status_code(exc)

    # Client mistakes are warnings, source outages are errors
    level = logging.WARNING if status_code < 500 else logging.ERROR
    logger.log(
        level,
        f"[API] {request.method} {request.url.path} -> {status_code} {exc.code}: {exc}",
    )

    return create_error_response(exc, status_code, request)


def make_generic_handler(debug: bool = False):
    async def handle_unexpected_exception(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        logger.error(
            f"[API] Unhandled {type(exc).__name__} in {request.url.path}: {exc}",
            exc_info=exc,
        )

        body = {
            "error": "INTERNAL_ERROR",
            "message": "Something went wrong while checking this item",
            "path": str(request.url.path),
        }
        if debug:
            body["debug"] = {
                "exception": type(exc).__name__,
                "message": str(exc),
                "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            }
        return JSONResponse(status_code=500, content=body)

    return handle_unexpected_exception


# ============================================================
# Setup Function
# ============================================================

def setup_error_handlers(app: FastAPI, debug: bool = False):
    """Register handlers on the app; debug adds exception details to 500 bodies."""
    app.add_exception_handler(SellCheckError, handle_sellcheck_exception)
    app.add_exception_handler(Exception, make_generic_handler(debug))

    logger.info(f"[ERROR HANDLER] Configured (debug={debug})")
