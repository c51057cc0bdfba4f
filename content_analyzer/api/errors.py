"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Ce module convertit les erreurs du domaine (soumission invalide, introuvable, échouée, file
pleine) et les exceptions HTTP en une enveloppe unique `{code, message, trace_id, details}`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from content_analyzer.core.http_constants import (
    HTTP_BAD_REQUEST,
    HTTP_CONFLICT,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NOT_FOUND,
    HTTP_TOO_MANY_REQUESTS,
    HTTP_UNAUTHORIZED,
    HTTP_UNPROCESSABLE_ENTITY,
    QUEUE_FULL_RETRY_AFTER_S,
)
from content_analyzer.domain.errors import (
    AnalysisFailed,
    InvalidSubmission,
    QueueFull,
    SubmissionNotFound,
)

log = logging.getLogger(__name__)


@dataclass
class ErrorEnvelope:
    """Standard error envelope for API responses."""

    code: str
    message: str
    trace_id: str | None = None
    details: dict[str, Any] | None = None


class ErrorCodes:
    """Standard error codes for the API."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Pipeline d'analyse
    INVALID_SUBMISSION = "INVALID_SUBMISSION"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    QUEUE_FULL = "QUEUE_FULL"
    EMAIL_EXISTS = "EMAIL_EXISTS"


_HTTP_CODES = {
    400: ErrorCodes.BAD_REQUEST,
    401: ErrorCodes.UNAUTHORIZED,
    403: ErrorCodes.FORBIDDEN,
    404: ErrorCodes.NOT_FOUND,
    405: ErrorCodes.METHOD_NOT_ALLOWED,
    409: ErrorCodes.CONFLICT,
    422: ErrorCodes.VALIDATION_ERROR,
    429: ErrorCodes.RATE_LIMITED,
    500: ErrorCodes.INTERNAL_ERROR,
    503: ErrorCodes.SERVICE_UNAVAILABLE,
}


class APIError(HTTPException):
    """Custom API error with standard envelope."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code
        self.message = message
        self.details = details


def create_error_response(
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None = None,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    envelope = ErrorEnvelope(code=code, message=message, trace_id=trace_id, details=details)
    return JSONResponse(
        status_code=status_code,
        content={
            "code": envelope.code,
            "message": envelope.message,
            "trace_id": envelope.trace_id,
            **({"details": envelope.details} if envelope.details else {}),
        },
        headers=headers,
    )


def extract_trace_id(request: Request) -> str | None:
    """Extract trace ID from request headers or request state (set by middleware)."""
    trace_id = request.headers.get("X-Trace-ID")
    if trace_id:
        return trace_id
    return getattr(request.state, "trace_id", None)


def unauthorized(message: str) -> APIError:
    return APIError(HTTP_UNAUTHORIZED, ErrorCodes.UNAUTHORIZED, message, headers={"WWW-Authenticate": "Bearer"})


def bad_request(message: str, details: dict[str, Any] | None = None) -> APIError:
    return APIError(HTTP_BAD_REQUEST, ErrorCodes.BAD_REQUEST, message, details)


def conflict(code: str, message: str) -> APIError:
    return APIError(HTTP_CONFLICT, code, message)


def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    trace_id = extract_trace_id(request)
    log.warning(
        "API error occurred",
        extra={"code": exc.code, "status_code": exc.status_code, "trace_id": trace_id},
    )
    return create_error_response(
        exc.status_code, exc.code, exc.message, trace_id, exc.details, getattr(exc, "headers", None)
    )


def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    trace_id = extract_trace_id(request)
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    log.warning(
        "HTTP exception occurred",
        extra={"code": code, "status_code": exc.status_code, "trace_id": trace_id},
    )
    return create_error_response(
        exc.status_code, code, str(exc.detail), trace_id, headers=getattr(exc, "headers", None)
    )


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(e.get("loc", ())), "msg": str(e.get("msg", ""))} for e in exc.errors()
    ]
    return create_error_response(
        HTTP_UNPROCESSABLE_ENTITY,
        ErrorCodes.VALIDATION_ERROR,
        "Request validation failed",
        extract_trace_id(request),
        {"errors": errors},
    )


def handle_invalid_submission(request: Request, exc: InvalidSubmission) -> JSONResponse:
    return create_error_response(
        HTTP_BAD_REQUEST, ErrorCodes.INVALID_SUBMISSION, str(exc), extract_trace_id(request)
    )


def handle_not_found(request: Request, exc: SubmissionNotFound) -> JSONResponse:
    return create_error_response(
        HTTP_NOT_FOUND, ErrorCodes.SUBMISSION_NOT_FOUND, "Submission not found", extract_trace_id(request)
    )


def handle_analysis_failed(request: Request, exc: AnalysisFailed) -> JSONResponse:
    return create_error_response(
        HTTP_CONFLICT,
        ErrorCodes.ANALYSIS_FAILED,
        "Analysis failed",
        extract_trace_id(request),
        {"submission_id": exc.submission_id, "reason": exc.reason},
    )


def handle_queue_full(request: Request, exc: QueueFull) -> JSONResponse:
    log.warning("Submission rejected: dispatch queue full", extra={"depth": exc.depth, "limit": exc.limit})
    return create_error_response(
        HTTP_TOO_MANY_REQUESTS,
        ErrorCodes.QUEUE_FULL,
        "Analysis queue is full, retry later",
        extract_trace_id(request),
        {"retry_after": QUEUE_FULL_RETRY_AFTER_S},
        headers={"Retry-After": str(QUEUE_FULL_RETRY_AFTER_S)},
    )


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    trace_id = extract_trace_id(request)
    log.error(
        "Unexpected error occurred",
        extra={
            "code": ErrorCodes.INTERNAL_ERROR,
            "trace_id": trace_id,
            "exception_type": type(exc).__name__,
        },
        exc_info=exc,
    )
    return create_error_response(
        HTTP_INTERNAL_SERVER_ERROR, ErrorCodes.INTERNAL_ERROR, "An unexpected error occurred", trace_id
    )


def register_error_handlers(app: FastAPI) -> None:
    """Branche les gestionnaires d'erreurs sur l'application."""
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(InvalidSubmission, handle_invalid_submission)
    app.add_exception_handler(SubmissionNotFound, handle_not_found)
    app.add_exception_handler(AnalysisFailed, handle_analysis_failed)
    app.add_exception_handler(QueueFull, handle_queue_full)
    app.add_exception_handler(Exception, handle_generic_exception)
