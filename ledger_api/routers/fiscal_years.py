from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.api import deps
from ledger_api.core.security import Principal
from ledger_api.schemas.fiscal_years import (
    FiscalYearCreate,
    FiscalYearLock,
    FiscalYearResponse,
    FiscalYearUpdate,
)
from ledger_api.services.compliance_export import ComplianceExportService
from ledger_api.services.fiscal_years import FiscalYearService

router = APIRouter()


def _service(db: AsyncSession = Depends(deps.get_tenant_db)) -> FiscalYearService:
    return FiscalYearService(db)


def _export_service(db: AsyncSession = Depends(deps.get_tenant_db)) -> ComplianceExportService:
    return ComplianceExportService(db)


@router.get("", response_model=List[FiscalYearResponse])
async def list_fiscal_years(
    organization_id: str = Depends(deps.get_organization_id),
    _principal: Principal = Depends(deps.require_reader),
    service: FiscalYearService = Depends(_service),
) -> List[FiscalYearResponse]:
    fiscal_years = await service.list_fiscal_years(organization_id)
    return [FiscalYearResponse.model_validate(fy) for fy in fiscal_years]


@router.post("", response_model=FiscalYearResponse, status_code=status.HTTP_201_CREATED)
async def create_fiscal_year(
    payload: FiscalYearCreate,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: FiscalYearService = Depends(_service),
) -> FiscalYearResponse:
    fiscal_year = await service.create_fiscal_year(organization_id, principal.user_id, payload)
    return FiscalYearResponse.model_validate(fiscal_year)


@router.patch("/{fiscal_year_id}", response_model=FiscalYearResponse)
async def update_fiscal_year(
    fiscal_year_id: str,
    payload: FiscalYearUpdate,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: FiscalYearService = Depends(_service),
) -> FiscalYearResponse:
    fiscal_year = await service.update_fiscal_year(organization_id, principal.user_id, fiscal_year_id, payload)
    return FiscalYearResponse.model_validate(fiscal_year)


@router.post("/{fiscal_year_id}/lock", response_model=FiscalYearResponse)
async def set_fiscal_year_lock(
    fiscal_year_id: str,
    payload: FiscalYearLock,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: FiscalYearService = Depends(_service),
) -> FiscalYearResponse:
    """Lock (``{"locked": true}``) or reopen a fiscal year."""
    fiscal_year = await service.set_lock(organization_id, principal.user_id, fiscal_year_id, payload.locked)
    return FiscalYearResponse.model_validate(fiscal_year)


@router.get("/{fiscal_year_id}/fec")
async def export_fec(
    fiscal_year_id: str,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: ComplianceExportService = Depends(_export_service),
) -> Response:
    """
    Download the FEC file of a locked fiscal year.

    The SHA-256 of the body is returned in ``X-Checksum``.
    """
    export = await service.generate_fec(organization_id, principal.user_id, fiscal_year_id)
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Checksum": export.checksum,
            "X-Row-Count": str(export.row_count),
        },
    )
