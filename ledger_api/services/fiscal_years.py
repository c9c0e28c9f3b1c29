import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import ConflictError, DomainRuleError
from ledger_api.core.tenant_isolation import get_entity_by_id
from ledger_api.models.base import utcnow
from ledger_api.models.ledger import FiscalYear
from ledger_api.schemas.fiscal_years import FiscalYearCreate, FiscalYearUpdate
from ledger_api.services.audit_log_service import AuditService

logger = logging.getLogger(__name__)


def _invalid_range() -> DomainRuleError:
    return DomainRuleError("FISCAL_YEAR_INVALID_RANGE", "End date must be on or after start date.")


def _already_locked() -> ConflictError:
    return ConflictError("FISCAL_YEAR_ALREADY_LOCKED", "The fiscal year is already locked.")


def _not_locked() -> ConflictError:
    return ConflictError("FISCAL_YEAR_NOT_LOCKED", "The fiscal year is not locked.")


def _label_exists() -> ConflictError:
    return ConflictError(
        "FISCAL_YEAR_LABEL_EXISTS",
        "A fiscal year with this label already exists in the organization.",
    )


class FiscalYearService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def list_fiscal_years(self, organization_id: str) -> List[FiscalYear]:
        result = await self.db.execute(
            select(FiscalYear)
            .where(FiscalYear.organization_id == organization_id)
            .order_by(FiscalYear.start_date.desc())
        )
        return list(result.scalars().all())

    async def get_fiscal_year(self, organization_id: str, fiscal_year_id: str) -> FiscalYear:
        return await get_entity_by_id(
            self.db,
            FiscalYear,
            fiscal_year_id,
            organization_id,
            "FISCAL_YEAR_NOT_FOUND",
            "The specified fiscal year does not exist for this organization.",
        )

    async def create_fiscal_year(self, organization_id: str, user_id: str, payload: FiscalYearCreate) -> FiscalYear:
        if payload.end_date < payload.start_date:
            raise _invalid_range()
        await self._ensure_label_free(organization_id, payload.label.strip())

        fiscal_year = FiscalYear(
            organization_id=organization_id,
            label=payload.label.strip(),
            start_date=payload.start_date,
            end_date=payload.end_date,
            locked_at=None,
        )
        self.db.add(fiscal_year)
        await self._flush()
        await self.audit.record(
            organization_id,
            user_id,
            "fiscal_year.create",
            "fiscal_year",
            fiscal_year.id,
            {"label": fiscal_year.label},
        )
        return fiscal_year

    async def update_fiscal_year(
        self,
        organization_id: str,
        user_id: str,
        fiscal_year_id: str,
        payload: FiscalYearUpdate,
    ) -> FiscalYear:
        fiscal_year = await self.get_fiscal_year(organization_id, fiscal_year_id)

        start_date = payload.start_date or fiscal_year.start_date
        end_date = payload.end_date or fiscal_year.end_date
        if end_date < start_date:
            raise _invalid_range()

        changes = payload.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        if payload.label is not None and payload.label.strip() != fiscal_year.label:
            await self._ensure_label_free(organization_id, payload.label.strip(), exclude_id=fiscal_year.id)
            fiscal_year.label = payload.label.strip()
        fiscal_year.start_date = start_date
        fiscal_year.end_date = end_date
        await self._flush()

        await self.audit.record(organization_id, user_id, "fiscal_year.update", "fiscal_year", fiscal_year.id, changes)
        return fiscal_year

    async def set_lock(self, organization_id: str, user_id: str, fiscal_year_id: str, locked: bool) -> FiscalYear:
        fiscal_year = await self.get_fiscal_year(organization_id, fiscal_year_id)

        if locked and fiscal_year.is_locked:
            raise _already_locked()
        if not locked and not fiscal_year.is_locked:
            raise _not_locked()

        # The transition only applies if no concurrent request made it first.
        current_state = FiscalYear.locked_at.is_(None) if locked else FiscalYear.locked_at.is_not(None)
        result = await self.db.execute(
            update(FiscalYear)
            .where(
                FiscalYear.id == fiscal_year.id,
                FiscalYear.organization_id == organization_id,
                current_state,
            )
            .values(locked_at=utcnow() if locked else None)
        )
        if result.rowcount != 1:
            raise _already_locked() if locked else _not_locked()

        action = "fiscal_year.lock" if locked else "fiscal_year.unlock"
        await self.audit.record(organization_id, user_id, action, "fiscal_year", fiscal_year.id, {"label": fiscal_year.label})
        logger.info(f"[LEDGER] {action} {fiscal_year.label} for organization {organization_id}")
        return fiscal_year

    async def _ensure_label_free(self, organization_id: str, label: str, exclude_id: Optional[str] = None) -> None:
        query = select(FiscalYear.id).where(
            FiscalYear.organization_id == organization_id,
            FiscalYear.label == label,
        )
        if exclude_id:
            query = query.where(FiscalYear.id != exclude_id)
        result = await self.db.execute(query)
        if result.first() is not None:
            raise _label_exists()

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Concurrent insert of the same label slipped past the pre-check.
            if "fiscal_year_org_label_key" in str(e.orig) or "UNIQUE" in str(e.orig):
                raise _label_exists() from e
            raise
