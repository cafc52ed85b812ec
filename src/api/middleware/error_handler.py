"""Exception handlers for the FastAPI application.

Everything that escapes a route, and every HTTPException raised by the
router (including the 404 every unknown path ends in), is turned into an
:class:`ErrorResponse` JSON body here. The admission middleware never reaches
these handlers: they answer 429/503 themselves.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.constants import HTTP_413_PAYLOAD_TOO_LARGE, HTTP_422_UNPROCESSABLE
from src.api.schemas.errors import ErrorResponse, ServiceInfo
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.context import RequestContext
from src.core.exceptions import (
    BulwarkError,
    ErrorCode,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)

HTTP_STATUS_TO_ERROR_CODE = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.VALIDATION_ERROR,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    HTTP_413_PAYLOAD_TOO_LARGE: ErrorCode.PAYLOAD_TOO_LARGE,
}


def get_service_info(settings: Settings) -> ServiceInfo:
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def _error_response(
    status_code: int,
    error_code: str,
    message: str,
    severity: str,
    details: dict[str, object] | None = None,
) -> Response:
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        severity=severity,
        service_info=get_service_info(get_settings()),
    )
    return ORJSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def status_for_error(exc: BulwarkError) -> int:
    """Map a BulwarkError subclass onto an HTTP status code."""
    if isinstance(exc, PayloadTooLargeError):
        return HTTP_413_PAYLOAD_TOO_LARGE
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def bulwark_error_handler(request: Request, exc: Exception) -> Response:
    """Handle BulwarkError exceptions.

    Raises:
        TypeError: If exc is not a BulwarkError instance.
    """
    if not isinstance(exc, BulwarkError):
        raise TypeError(f"Expected BulwarkError, got {type(exc).__name__}")

    log = logger.warning if exc.is_expected else logger.error
    log(
        "Handling {}: {}",
        type(exc).__name__,
        exc.message,
        method=request.method,
        path=request.url.path,
        error_code=exc.error_code,
    )

    return _error_response(
        status_for_error(exc),
        exc.error_code,
        exc.message,
        exc.severity.value,
        details=exc.context or None,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle RequestValidationError with per-field messages.

    Raises:
        TypeError: If exc is not a RequestValidationError instance.
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = error.get("loc", ())
        field_name = ".".join(str(part) for part in location[1:]) or "root"
        field_errors.setdefault(field_name, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        status_code=HTTP_422_UNPROCESSABLE,
    )

    return _error_response(
        HTTP_422_UNPROCESSABLE,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        "LOW",
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException, 404s for unknown paths included.

    Raises:
        TypeError: If exc is not an HTTPException instance.
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    error_code = HTTP_STATUS_TO_ERROR_CODE.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    server_side = exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR

    logger.log(
        "ERROR" if server_side else "INFO",
        "HTTP {} on {} {}",
        exc.status_code,
        request.method,
        request.url.path,
        status_code=exc.status_code,
    )

    response = _error_response(
        exc.status_code,
        error_code.value,
        str(exc.detail),
        "HIGH" if server_side else "LOW",
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Last-resort handler for unexpected exceptions."""
    logger.opt(exception=exc).error(
        "Unhandled {} on {} {}",
        type(exc).__name__,
        request.method,
        request.url.path,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        "An internal server error occurred",
        "CRITICAL",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on ``app``."""
    app.add_exception_handler(BulwarkError, bulwark_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
