from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.api import deps
from ledger_api.core.security import Principal
from ledger_api.schemas.banking import BankAccountCreate
from ledger_api.schemas.reference_data import (
    AccountCreate,
    AccountResponse,
    BankAccountResponse,
    JournalCreate,
    JournalResponse,
    ProjectCreate,
    ProjectResponse,
)
from ledger_api.services.reference_data import ReferenceDataService

router = APIRouter()


def _service(db: AsyncSession = Depends(deps.get_tenant_db)) -> ReferenceDataService:
    return ReferenceDataService(db)


@router.get("/journals", response_model=List[JournalResponse])
async def list_journals(
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: ReferenceDataService = Depends(_service),
) -> List[JournalResponse]:
    return [JournalResponse.model_validate(j) for j in await service.list_journals(organization_id)]


@router.post("/journals", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
async def create_journal(
    payload: JournalCreate,
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_writer),
    service: ReferenceDataService = Depends(_service),
) -> JournalResponse:
    return JournalResponse.model_validate(await service.create_journal(organization_id, payload))


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: ReferenceDataService = Depends(_service),
) -> List[AccountResponse]:
    return [AccountResponse.model_validate(a) for a in await service.list_accounts(organization_id)]


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    payload: AccountCreate,
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_writer),
    service: ReferenceDataService = Depends(_service),
) -> AccountResponse:
    return AccountResponse.model_validate(await service.create_account(organization_id, payload))


@router.get("/projects", response_model=List[ProjectResponse])
async def list_projects(
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: ReferenceDataService = Depends(_service),
) -> List[ProjectResponse]:
    return [ProjectResponse.model_validate(p) for p in await service.list_projects(organization_id)]


@router.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_writer),
    service: ReferenceDataService = Depends(_service),
) -> ProjectResponse:
    return ProjectResponse.model_validate(await service.create_project(organization_id, payload))


@router.get("/bank-accounts", response_model=List[BankAccountResponse])
async def list_bank_accounts(
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: ReferenceDataService = Depends(_service),
) -> List[BankAccountResponse]:
    return [BankAccountResponse.model_validate(b) for b in await service.list_bank_accounts(organization_id)]


@router.post("/bank-accounts", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED)
async def create_bank_account(
    payload: BankAccountCreate,
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_writer),
    service: ReferenceDataService = Depends(_service),
) -> BankAccountResponse:
    return BankAccountResponse.model_validate(await service.create_bank_account(organization_id, payload))
