from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.api import deps
from ledger_api.core.security import Principal
from ledger_api.schemas.banking import BankStatementCreate, BankStatementResponse, LinkedEntry
from ledger_api.services.bank_statements import BankStatementService

router = APIRouter()


def _service(db: AsyncSession = Depends(deps.get_tenant_db)) -> BankStatementService:
    return BankStatementService(db)


@router.post("/bank-statements", response_model=BankStatementResponse, status_code=status.HTTP_201_CREATED)
async def record_bank_statement(
    payload: BankStatementCreate,
    organization_id: str = Depends(deps.get_organization_id),
    principal: Principal = Depends(deps.require_writer),
    service: BankStatementService = Depends(_service),
) -> BankStatementResponse:
    """Record a statement and reconcile the listed entries against it, all or nothing."""
    recorded = await service.record_statement(organization_id, principal.user_id, payload)
    statement = recorded.statement
    return BankStatementResponse(
        id=statement.id,
        bank_account_id=statement.bank_account_id,
        statement_date=statement.statement_date,
        opening_balance=statement.opening_balance,
        closing_balance=statement.closing_balance,
        created_at=statement.created_at,
        entries=[LinkedEntry.model_validate(entry) for entry in recorded.entries],
    )
