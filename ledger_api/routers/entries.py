from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.api import deps
from ledger_api.core.security import Principal
from ledger_api.schemas.entries import EntryCreate, EntryResponse, EntryReverse
from ledger_api.services.entries import EntryService

router = APIRouter()


def _service(db: AsyncSession = Depends(deps.get_tenant_db)) -> EntryService:
    return EntryService(db)


@router.post("", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: EntryCreate,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: EntryService = Depends(_service),
) -> EntryResponse:
    entry = await service.create_entry(organization_id, principal.user_id, payload)
    return EntryResponse.model_validate(entry)


@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: str,
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: EntryService = Depends(_service),
) -> EntryResponse:
    entry = await service.get_entry(organization_id, entry_id)
    return EntryResponse.model_validate(entry)


@router.post("/{entry_id}/lock", response_model=EntryResponse)
async def lock_entry(
    entry_id: str,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: EntryService = Depends(_service),
) -> EntryResponse:
    entry = await service.lock_entry(organization_id, principal.user_id, entry_id)
    return EntryResponse.model_validate(entry)


@router.post("/{entry_id}/reverse", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
async def reverse_entry(
    entry_id: str,
    payload: EntryReverse,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: EntryService = Depends(_service),
) -> EntryResponse:
    entry = await service.reverse_entry(organization_id, principal.user_id, entry_id, payload)
    return EntryResponse.model_validate(entry)
