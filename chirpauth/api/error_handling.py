from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chirpauth.api.schemas import Envelope, ErrorBody
from chirpauth.logging import get_logger
from chirpauth.service.errors import AuthenticationError, ServiceError
from chirpauth.storage.errors import ConstraintViolation, StoreUnavailable

logger = get_logger(__name__)

# Stable error codes mapped to HTTP status codes
_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    500: "server_error",
    503: "store_unavailable",
}


def _error_code_for_status(status_code: int) -> str:
    return _STATUS_TO_CODE.get(status_code, "server_error")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Wrap an error in the response envelope."""
    error_code = code or _error_code_for_status(status_code)
    error_body = ErrorBody(code=error_code, message=message, details=details)
    envelope = Envelope(status="error", error=error_body)
    return JSONResponse(
        status_code=status_code, content=envelope.model_dump(), headers=headers
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent exception handlers for domain and storage errors."""

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(409, exc.message, exc.detail, code="conflict")

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error(
            "store_unavailable",
            path=request.url.path,
            method=request.method,
            message=exc.message,
        )
        return _error_response(503, "service temporarily unavailable", code="store_unavailable")

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        error_code = getattr(exc, "error_code", None)
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=error_code,
            message=exc.message,
        )
        headers = None
        details: dict | None = exc.detail or None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
            # internal failure reasons stay in the logs
            details = None
        return _error_response(
            exc.status_code, exc.message, details, code=error_code, headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        logger.info(
            "request_validation_failed",
            path=request.url.path,
            method=request.method,
            error_count=len(errors),
        )
        return _error_response(400, "invalid request body", errors, code="validation_error")

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        if isinstance(exc.detail, dict) and "error" in exc.detail:
            error_obj = exc.detail["error"]
            if isinstance(error_obj, dict):
                message = error_obj.get("message", "http error")
                code = error_obj.get("code")
                details = error_obj.get("details")
                log_fn = logger.error if exc.status_code >= 500 else logger.warning
                log_fn(
                    "http_error",
                    path=request.url.path,
                    method=request.method,
                    status_code=exc.status_code,
                    error_code=code,
                    message=message,
                )
                return _error_response(exc.status_code, message, details, code=code)
        message = exc.detail if isinstance(exc.detail, str) else "http error"
        if exc.status_code >= 500:
            logger.error(
                "http_error_fallback",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        return _error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return _error_response(500, "internal server error", code="server_error")
