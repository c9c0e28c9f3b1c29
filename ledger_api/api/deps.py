import logging
from typing import Callable

from fastapi import Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import AuthorizationError, InfrastructureError
from ledger_api.core.rbac import READ_ROLES, WRITE_ROLES
from ledger_api.core.security import Principal

logger = logging.getLogger(__name__)


def get_db(request: Request) -> AsyncSession:
    """Session published by the tenant interceptor: tenant-scoped for /orgs routes, plain otherwise."""
    db = getattr(request.state, "db", None)
    if db is None:
        raise InfrastructureError("DATABASE_SESSION_MISSING", "No database session bound to the request.")
    return db


def get_tenant_db(request: Request) -> AsyncSession:
    if getattr(request.state, "tenant_transaction", None) is None:
        raise InfrastructureError("TENANT_CONTEXT_MISSING", "Route requires a tenant transaction.")
    return get_db(request)


def get_organization_id(request: Request) -> str:
    organization_id = getattr(request.state, "organization_id", None)
    if organization_id is None:
        raise InfrastructureError("TENANT_CONTEXT_MISSING", "Route requires a tenant transaction.")
    return organization_id


def require_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if principal is None:
        detail = getattr(request.state, "auth_error", None) or "Authentication required."
        raise AuthorizationError("UNAUTHORIZED", detail, status_code=status.HTTP_401_UNAUTHORIZED)
    return principal


def require_roles(*roles: str) -> Callable[..., Principal]:
    """Dependency factory: caller must hold one of ``roles`` (super-admins always pass)."""
    allowed = frozenset(roles)

    def dependency(principal: Principal = Depends(require_principal)) -> Principal:
        if not principal.has_any_role(allowed):
            logger.warning(f"[AUTH] User {principal.user_id} lacks roles {sorted(allowed)}")
            raise AuthorizationError("FORBIDDEN", "You do not have permission to perform this action.")
        return principal

    return dependency


require_reader = require_roles(*READ_ROLES)
require_writer = require_roles(*WRITE_ROLES)
