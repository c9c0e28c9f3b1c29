"""
Request logging and bearer-token authentication.

Authentication only publishes the caller on ``request.state``; rejecting
anonymous callers is left to the tenant interceptor and route dependencies,
so public routes such as ``/healthz`` stay reachable.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ledger_api.core.config import Settings
from ledger_api.core.security import decode_access_token, principal_from_claims

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """Get client IP, accounting for proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs failures and ledger writes."""

    WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        start_time = time.time()
        request.state.request_id = request_id
        client_ip = get_client_ip(request)
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"[{request_id}] {request.method} {path} -> ERROR IP={client_ip} error={str(e)}")
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        if response.status_code >= 500:
            logger.error(f"[{request_id}] {request.method} {path} -> {response.status_code} ({duration_ms}ms) IP={client_ip}")
        elif response.status_code >= 400 or request.method in self.WRITE_METHODS:
            logger.warning(f"[{request_id}] {request.method} {path} -> {response.status_code} ({duration_ms}ms) IP={client_ip}")
        else:
            logger.debug(f"[{request_id}] {request.method} {path} -> {response.status_code} ({duration_ms}ms)")

        response.headers["X-Request-ID"] = request_id
        return response


class AuthenticationMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.principal = None
        request.state.auth_error = None

        authorization = request.headers.get("Authorization")
        if authorization:
            scheme, _, token = authorization.partition(" ")
            if scheme.lower() != "bearer" or not token.strip():
                request.state.auth_error = "Malformed Authorization header"
            else:
                claims = decode_access_token(token.strip(), self.settings)
                principal = principal_from_claims(claims) if claims else None
                if principal is None:
                    request.state.auth_error = "Invalid or expired access token"
                request.state.principal = principal

        return await call_next(request)
