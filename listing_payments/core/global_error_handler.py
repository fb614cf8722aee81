import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from listing_payments.modules.payment.exceptions import PaymentError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected internal server error occurred."


def create_error_response(status_code: int, message: str, details: Optional[Any] = None) -> dict:
    """Uniform error body shared by every handler: {"message", "code"[, "details"]}."""
    response = {
        "message": message,
        "code": status_code,
    }
    if details:
        response["details"] = details
    return response


def _error_json(
    status_code: int,
    message: str,
    details: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(status_code=status_code, message=message, details=details),
        headers=headers,
    )


def _route(request: Request) -> str:
    return f"{request.method} {request.url.path}"


def _format_validation_errors(exc: RequestValidationError) -> List[str]:
    return [
        f"Field '{'.'.join(map(str, error['loc']))}': {error['msg']}"
        for error in exc.errors()
    ]


async def payment_exception_handler(request: Request, exc: PaymentError):
    """Maps PaymentError subclasses to their own status code and message."""
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"[Payment] {type(exc).__name__} ({exc.status_code}): {exc.detail} on {_route(request)}")
    else:
        logger.warning(f"[Payment] {type(exc).__name__} ({exc.status_code}): {exc.detail} on {_route(request)}")
    return _error_json(exc.status_code, exc.detail)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handles StarletteHTTPException (which includes FastAPI's HTTPException)."""
    logger.warning(f"HTTP {exc.status_code}: {exc.detail} on {_route(request)}")
    return _error_json(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_details = _format_validation_errors(exc)
    logger.warning(f"Validation failed on {_route(request)}: {error_details}")
    return _error_json(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation failed",
        details={"errors": error_details},
    )


async def general_exception_handler(request: Request, exc: Exception):
    # Full traceback stays in the logs, the client only gets the generic message
    logger.error(f"Unhandled exception on {_route(request)}: {exc}\n{traceback.format_exc()}")
    return _error_json(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


def register_global_exception_handlers(app: FastAPI):
    app.exception_handler(PaymentError)(payment_exception_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(Exception)(general_exception_handler)
