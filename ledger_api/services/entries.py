import logging
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ledger_api.core.errors import ConflictError, NotFoundError
from ledger_api.core.tenant_isolation import ensure_all_belong, get_entity_by_id
from ledger_api.models.base import utcnow
from ledger_api.models.ledger import Account, Entry, EntryLine, FiscalYear, Journal, Project
from ledger_api.schemas.entries import EntryCreate, EntryReverse
from ledger_api.services.audit_log_service import AuditService
from ledger_api.services.ledger_rules import LineAmounts, ensure_balanced, ensure_open_for_posting, swap_sides
from ledger_api.services.number_generator import format_entry_reference
from ledger_api.services.sequence import SequenceService

logger = logging.getLogger(__name__)


class EntryService:
    """Creates, locks and reverses journal entries."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sequences = SequenceService(db)
        self.audit = AuditService(db)

    async def get_entry(self, organization_id: str, entry_id: str) -> Entry:
        result = await self.db.execute(
            select(Entry)
            .where(Entry.id == entry_id, Entry.organization_id == organization_id)
            .options(selectinload(Entry.lines))
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("ENTRY_NOT_FOUND", "The requested entry does not exist in this organization.")
        return entry

    async def create_entry(self, organization_id: str, user_id: str, payload: EntryCreate) -> Entry:
        lines = [
            LineAmounts(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                project_id=line.project_id,
            )
            for line in payload.lines
        ]
        entry = await self._post(
            organization_id,
            user_id,
            fiscal_year_id=payload.fiscal_year_id,
            journal_id=payload.journal_id,
            entry_date=payload.date,
            memo=payload.memo,
            lines=lines,
        )
        await self.audit.record(
            organization_id,
            user_id,
            "entry.create",
            "entry",
            entry.id,
            {"reference": entry.reference, "journal_id": entry.journal_id},
        )
        return entry

    async def lock_entry(self, organization_id: str, user_id: str, entry_id: str) -> Entry:
        entry = await self.get_entry(organization_id, entry_id)
        if entry.is_locked:
            raise ConflictError("ENTRY_ALREADY_LOCKED", "The entry is already locked.")

        # Conditional on the committed row, so a concurrent lock loses here.
        result = await self.db.execute(
            update(Entry)
            .where(
                Entry.id == entry.id,
                Entry.organization_id == organization_id,
                Entry.locked_at.is_(None),
            )
            .values(locked_at=utcnow())
        )
        if result.rowcount != 1:
            raise ConflictError("ENTRY_ALREADY_LOCKED", "The entry is already locked.")
        await self.audit.record(organization_id, user_id, "entry.lock", "entry", entry.id, {"reference": entry.reference})
        return entry

    async def reverse_entry(
        self,
        organization_id: str,
        user_id: str,
        entry_id: str,
        payload: EntryReverse,
    ) -> Entry:
        original = await self.get_entry(organization_id, entry_id)

        existing = await self.db.execute(
            select(Entry.id).where(
                Entry.organization_id == organization_id,
                Entry.reversal_of_id == original.id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("ENTRY_ALREADY_REVERSED", f"Entry {original.reference} has already been reversed.")

        original_lines = [
            LineAmounts(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                project_id=line.project_id,
            )
            for line in original.lines
        ]
        reversal = await self._post(
            organization_id,
            user_id,
            fiscal_year_id=payload.fiscal_year_id,
            journal_id=payload.journal_id or original.journal_id,
            entry_date=payload.date,
            memo=payload.memo or f"Reversal of {original.reference}",
            lines=swap_sides(original_lines),
            reversal_of_id=original.id,
        )
        await self.audit.record(
            organization_id,
            user_id,
            "entry.reverse",
            "entry",
            original.id,
            {"reversal_id": reversal.id, "reversal_reference": reversal.reference},
        )
        return reversal

    async def _post(
        self,
        organization_id: str,
        user_id: str,
        fiscal_year_id: str,
        journal_id: str,
        entry_date: date,
        memo: Optional[str],
        lines: Sequence[LineAmounts],
        reversal_of_id: Optional[str] = None,
    ) -> Entry:
        """Validate and write one entry. Every check runs before the sequence is touched."""
        fiscal_year = await get_entity_by_id(
            self.db,
            FiscalYear,
            fiscal_year_id,
            organization_id,
            "FISCAL_YEAR_NOT_FOUND",
            "The specified fiscal year does not exist for this organization.",
        )
        ensure_open_for_posting(fiscal_year, entry_date)

        journal = await get_entity_by_id(
            self.db,
            Journal,
            journal_id,
            organization_id,
            "JOURNAL_NOT_FOUND",
            "The specified journal does not exist for this organization.",
        )

        await ensure_all_belong(
            self.db, Account, (line.account_id for line in lines), organization_id, "ACCOUNT_NOT_FOUND"
        )
        await ensure_all_belong(
            self.db,
            Project,
            (line.project_id for line in lines if line.project_id),
            organization_id,
            "PROJECT_NOT_FOUND",
        )

        ensure_balanced(lines)

        sequence_number = await self.sequences.reserve(organization_id, fiscal_year.id, journal.id)
        reference = format_entry_reference(journal.code, fiscal_year.start_date, sequence_number)

        entry = Entry(
            organization_id=organization_id,
            fiscal_year_id=fiscal_year.id,
            journal_id=journal.id,
            date=entry_date,
            reference=reference,
            memo=memo,
            created_by=user_id,
            locked_at=None,
            bank_statement_id=None,
            reversal_of_id=reversal_of_id,
            lines=[
                EntryLine(
                    organization_id=organization_id,
                    account_id=line.account_id,
                    project_id=line.project_id,
                    position=position,
                    debit=line.debit,
                    credit=line.credit,
                )
                for position, line in enumerate(lines)
            ],
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # A concurrent reversal of the same entry committed first.
            if reversal_of_id is not None and "reversal_of_id" in str(e.orig):
                raise ConflictError("ENTRY_ALREADY_REVERSED", "The entry has already been reversed.") from e
            raise
        logger.info(f"[LEDGER] Posted entry {reference} ({entry.id}) for organization {organization_id}")
        return entry
