"""
Tenant transaction interceptor.

Every request addressed to an organization runs inside one tenant
transaction. The transaction is settled (commit below 400, rollback
otherwise) before the response leaves this interceptor.
"""

import logging
import re
from typing import Callable, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ledger_api.core.config import Settings
from ledger_api.core.db import Database, validate_organization_id
from ledger_api.core.errors import DomainError, error_response, problem_response
from ledger_api.core.tenant_transaction import TenantTransaction
from ledger_api.models.organization import Organization

logger = logging.getLogger(__name__)

ORG_PATH_PATTERN = re.compile(r"/orgs/([^/]+)")
TENANT_HEADERS = ("x-organization-id", "x-tenant-id", "x-org-id")


def resolve_target_organization(request: Request) -> Optional[str]:
    """Tenant addressed by the request: path segment, then tenant headers, then the caller's own."""
    match = ORG_PATH_PATTERN.search(request.url.path)
    if match:
        return match.group(1)

    for header in TENANT_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    principal = getattr(request.state, "principal", None)
    if principal is not None and principal.organization_id:
        return principal.organization_id
    return None


class TenantTransactionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, database: Database, settings: Settings):
        super().__init__(app)
        self.database = database
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        target = resolve_target_organization(request)

        if target is None:
            async with self.database.session_factory() as session:
                request.state.db = session
                request.state.tenant_transaction = None
                return await call_next(request)

        principal = getattr(request.state, "principal", None)
        if principal is None:
            detail = getattr(request.state, "auth_error", None) or "Authentication required."
            return problem_response(
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                detail,
                path,
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            organization_id = validate_organization_id(target)
        except DomainError as e:
            return error_response(e, path)

        if not principal.is_super_admin and principal.organization_id != organization_id:
            logger.warning(
                f"[TENANT_TX] User {principal.user_id} of {principal.organization_id} "
                f"denied access to organization {organization_id}"
            )
            return problem_response(
                status.HTTP_403_FORBIDDEN,
                "FORBIDDEN_ORGANIZATION_ACCESS",
                "You do not have access to this organization.",
                path,
            )

        async with self.database.session_factory() as session:
            organization = await session.get(Organization, organization_id)
        if organization is None:
            return problem_response(
                status.HTTP_404_NOT_FOUND,
                "ORGANIZATION_NOT_FOUND",
                f"Organization {organization_id} not found.",
                path,
            )
        if organization.is_access_locked:
            return problem_response(
                status.HTTP_423_LOCKED,
                "ORGANIZATION_LOCKED",
                organization.access_locked_reason or "Organization access is locked.",
                path,
            )

        transaction = TenantTransaction(self.database.tenant_session_factory, organization_id, self.settings)
        try:
            session = await transaction.open()
        except Exception as e:
            logger.error(f"[TENANT_TX] Could not open transaction for {organization_id}: {type(e).__name__}: {e}")
            return problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "TENANT_TRANSACTION_FAILED", None, path)

        request.state.db = session
        request.state.tenant_transaction = transaction
        request.state.organization_id = organization_id

        try:
            response = await call_next(request)
        except BaseException:
            await transaction.rollback("unhandled exception")
            raise

        if response.status_code >= 400:
            await transaction.rollback(f"response status {response.status_code}")
            return response

        try:
            await transaction.commit()
        except Exception as e:
            logger.error(f"[TENANT_TX] Commit failed for {organization_id}: {type(e).__name__}: {e}")
            return problem_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "TENANT_TRANSACTION_FAILED", None, path)
        return response
