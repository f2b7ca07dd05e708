"""
HTTP plumbing shared by the FastAPI services.

- Correlation id middleware: honours ``X-Correlation-ID`` or generates one,
  echoes it on the response and logs each request with a sanitized path.
- Exception handlers: every error leaves as ``application/problem+json``
  with status, title, detail, instance and trace_id.

STATUS MAPPING:
    RequestValidationError          400
    domain errors                   per service (404 / 400 / 409)
    confluent_kafka.KafkaException  503  event bus unavailable
    sqlalchemy OperationalError     503  database unavailable
    other SQLAlchemyError           500
    httpx.HTTPError                 502  downstream service failed
    TimeoutError                    504
    anything else                   500
"""

import logging
import time
import uuid
from typing import Dict, Optional, Tuple, Type

import httpx
from confluent_kafka import KafkaException
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException

from fooddelivery.shared.logger import sanitize_for_log

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
PROBLEM_MEDIA_TYPE = "application/problem+json"

# exception class -> (status code, title, expose exception text as detail)
ErrorMapping = Dict[Type[BaseException], Tuple[int, str, bool]]

INFRASTRUCTURE_ERRORS: ErrorMapping = {
    KafkaException: (503, "Event bus unavailable", False),
    OperationalError: (503, "Database unavailable", False),
    SQLAlchemyError: (500, "Database error", False),
    httpx.HTTPError: (502, "Downstream service error", False),
    httpx.TimeoutException: (504, "Downstream service timed out", False),
    TimeoutError: (504, "Request timed out", False),
}


def correlation_id_of(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or uuid.uuid4().hex


def problem_response(
    request: Request,
    status_code: int,
    title: str,
    detail: Optional[str] = None,
) -> JSONResponse:
    """Build an RFC 7807 style error response."""
    content = {
        "status": status_code,
        "title": title,
        "detail": detail or title,
        "instance": request.url.path,
        "trace_id": correlation_id_of(request),
    }
    return JSONResponse(status_code=status_code, content=content, media_type=PROBLEM_MEDIA_TYPE)


def register_exception_handlers(app: FastAPI, domain_errors: Optional[ErrorMapping] = None) -> None:
    """
    Attach problem+json handlers for validation, domain and infrastructure errors.

    Args:
        app: FastAPI application
        domain_errors: Service-specific mapping; detail is the exception text
            when the third tuple element is True
    """
    mapping: ErrorMapping = dict(domain_errors or {})
    mapping.update(INFRASTRUCTURE_ERRORS)

    def _make_handler(status_code: int, title: str, expose: bool):
        async def _handler(request: Request, exc: Exception):
            log_extra = {
                "correlation_id": correlation_id_of(request),
                "path": sanitize_for_log(request.url.path),
                "method": request.method,
                "status_code": status_code,
                "error_type": type(exc).__name__,
            }
            if status_code >= 500:
                logger.error(title, exc_info=exc, extra=log_extra)
            else:
                logger.warning(f"{title}: {exc}", extra=log_extra)
            return problem_response(request, status_code, title, str(exc) if expose else None)

        return _handler

    for exc_class, (status_code, title, expose) in mapping.items():
        app.add_exception_handler(exc_class, _make_handler(status_code, title, expose))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors
        )
        logger.warning(
            "Request validation failed",
            extra={
                "correlation_id": correlation_id_of(request),
                "path": sanitize_for_log(request.url.path),
                "errors": len(errors),
            },
        )
        return problem_response(request, 400, "Invalid request", detail)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return problem_response(request, exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            extra={
                "correlation_id": correlation_id_of(request),
                "path": sanitize_for_log(request.url.path),
                "method": request.method,
            },
        )
        return problem_response(
            request, 500, "Internal server error", "An unexpected error occurred"
        )


def add_correlation_middleware(app: FastAPI) -> None:
    """Assign a correlation id to every request and log the outcome."""

    @app.middleware("http")
    async def _correlation(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = sanitize_for_log(correlation_id, max_length=64)

        start = time.time()
        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = request.state.correlation_id

        logger.info(
            "Request completed",
            extra={
                "correlation_id": request.state.correlation_id,
                "method": request.method,
                "path": sanitize_for_log(request.url.path),
                "status_code": response.status_code,
                "duration_ms": round((time.time() - start) * 1000, 2),
            },
        )
        return response


def create_service_app(
    title: str,
    service_name: str,
    lifespan=None,
    domain_errors: Optional[ErrorMapping] = None,
) -> FastAPI:
    """FastAPI app with correlation ids, problem+json errors and /health."""
    app = FastAPI(title=title, lifespan=lifespan)
    add_correlation_middleware(app)
    register_exception_handlers(app, domain_errors)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": service_name}

    return app
