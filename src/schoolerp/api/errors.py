"""
Error boundary.

Every failure leaves the API as ``{"success": false, "error": {code, message}}``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from schoolerp.errors import ServiceError, ValidationError
from schoolerp.models import ErrorBody, ErrorResponse

logger = structlog.get_logger()

_HTTP_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "TOO_MANY_REQUESTS",
}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorBody(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    message = first.get("msg") or "Validation failed"
    # Pydantic prefixes messages from plain ValueErrors
    return message.removeprefix("Value error, ")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that serialize every error the same way."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.code,
            message=exc.message,
        )
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        message = first_validation_message(exc)
        logger.info(
            "validation_error",
            path=request.url.path,
            method=request.method,
            message=message,
        )
        return error_response(ValidationError.status_code, ValidationError.code, message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = "Route not found"
        else:
            message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        code = _HTTP_CODES.get(exc.status_code, "REQUEST_ERROR")
        if exc.status_code >= 500:
            logger.error("http_error", path=request.url.path, status_code=exc.status_code)
            code, message = "INTERNAL_SERVER_ERROR", "Something went wrong"
        return error_response(exc.status_code, code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )
        return error_response(500, "INTERNAL_SERVER_ERROR", "Something went wrong")
