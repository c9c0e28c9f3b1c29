"""
Tenant lookup helpers.

Row-level security already hides other tenants' rows; these helpers add the
explicit ``organization_id`` filter so a missing or foreign row is reported
with the domain's own not-found code.
"""

from typing import Iterable, Set, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import NotFoundError
from ledger_api.models.base import Base

T = TypeVar("T", bound=Base)


async def get_entity_by_id(
    db: AsyncSession,
    model: Type[T],
    entity_id: str,
    organization_id: str,
    error_code: str,
    error_message: str | None = None,
) -> T:
    """
    Retrieve an entity by ID, restricted to the given organization.

    Raises:
        NotFoundError: with ``error_code`` if the entity does not exist or belongs to another tenant
    """
    query = select(model).where(
        model.id == entity_id,
        model.organization_id == organization_id,
    )
    result = await db.execute(query)
    entity = result.scalar_one_or_none()

    if entity is None:
        raise NotFoundError(error_code, error_message or f"{model.__name__} {entity_id} not found")
    return entity


async def ensure_all_belong(
    db: AsyncSession,
    model: Type[T],
    entity_ids: Iterable[str],
    organization_id: str,
    error_code: str,
) -> Set[str]:
    """Verify every id exists for the tenant; raise on the first missing one."""
    wanted = set(entity_ids)
    if not wanted:
        return wanted
    result = await db.execute(
        select(model.id).where(model.id.in_(wanted), model.organization_id == organization_id)
    )
    found = set(result.scalars().all())
    missing = sorted(wanted - found)
    if missing:
        raise NotFoundError(error_code, f"{model.__name__} {missing[0]} not found")
    return found
