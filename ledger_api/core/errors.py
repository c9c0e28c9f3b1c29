"""
Typed domain errors and their problem+json rendering.

Every failure that reaches a client carries a stable machine-readable code
(rendered as the problem ``title``) and an HTTP status. Errors are raised
where they happen and serialized once, at the application boundary.
"""

import logging
from http import HTTPStatus
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"
SERVER_FAULT_DETAIL = "An unexpected error occurred."


class DomainError(Exception):
    """Base error carrying an HTTP-equivalent status and a stable code."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, detail: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class DomainRuleError(DomainError):
    status_code = 422


class InfrastructureError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def problem_body(
    status_code: int,
    code: Optional[str],
    detail: Optional[str],
    instance: Optional[str] = None,
) -> dict[str, Any]:
    if status_code >= 500:
        detail = SERVER_FAULT_DETAIL
    title = code or HTTPStatus(status_code).phrase
    return {
        "type": "about:blank",
        "title": title,
        "status": status_code,
        "detail": detail,
        "instance": instance,
    }


def problem_response(
    status_code: int,
    code: Optional[str],
    detail: Optional[str] = None,
    instance: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Render a problem+json response. Used by handlers and interceptors alike."""
    return JSONResponse(
        status_code=status_code,
        content=problem_body(status_code, code, detail, instance),
        media_type=PROBLEM_MEDIA_TYPE,
        headers=headers,
    )


def error_response(exc: DomainError, instance: Optional[str] = None) -> JSONResponse:
    return problem_response(exc.status_code, exc.code, exc.detail, instance)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[ERROR] {exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return error_response(exc, request.url.path)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    logger.warning(f"Validation failed on {request.method} {request.url.path}: {messages}")
    return problem_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "; ".join(messages) or "Invalid request payload.",
        request.url.path,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else None
    return problem_response(exc.status_code, None, detail, request.url.path, headers=exc.headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}")
    return problem_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        None,
        request.url.path,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
