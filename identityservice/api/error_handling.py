from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from identityservice.api.schemas import ApiResponse
from identityservice.logging import get_logger
from identityservice.service.errors import ErrorCode, ServiceError
from identityservice.storage.errors import ConstraintViolation

logger = get_logger(__name__)

# Framework-raised HTTP errors that have a dedicated error code
_STATUS_TO_ERROR_CODE = {
    401: ErrorCode.UNAUTHENTICATED,
    403: ErrorCode.ACCESS_DENIED,
}


def _error_response(status_code: int, code: int, message: str) -> JSONResponse:
    """Create an error envelope; ``result`` is never present on errors."""
    envelope = ApiResponse[None](code=code, message=message)
    return JSONResponse(
        status_code=status_code, content=envelope.model_dump(exclude_none=True)
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Translate every failure into the ``{code, message}`` envelope."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        error_code = ErrorCode.USER_EXISTED
        return _error_response(error_code.status_code, error_code.code, error_code.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_validation_failed",
            path=request.url.path,
            method=request.method,
            errors=[
                {"loc": list(err.get("loc", ())), "type": err.get("type")}
                for err in exc.errors()
            ],
        )
        error_code = ErrorCode.INVALID_KEY
        return _error_response(error_code.status_code, error_code.code, error_code.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        error_code = _STATUS_TO_ERROR_CODE.get(exc.status_code)
        if error_code is not None:
            code, message = error_code.code, error_code.message
        else:
            code = ErrorCode.UNCATEGORIZED_EXCEPTION.code
            message = str(exc.detail) if exc.detail else ErrorCode.UNCATEGORIZED_EXCEPTION.message
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        else:
            logger.warning(
                "http_client_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        return _error_response(exc.status_code, code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        error_code = ErrorCode.UNCATEGORIZED_EXCEPTION
        return _error_response(error_code.status_code, error_code.code, error_code.message)
