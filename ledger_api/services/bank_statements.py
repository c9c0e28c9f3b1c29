import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import ConflictError, DomainRuleError, NotFoundError
from ledger_api.core.tenant_isolation import get_entity_by_id
from ledger_api.models.banking import BankAccount, BankStatement
from ledger_api.models.ledger import Entry, EntryLine
from ledger_api.schemas.banking import BankStatementCreate
from ledger_api.services.audit_log_service import AuditService

logger = logging.getLogger(__name__)


@dataclass
class RecordedStatement:
    statement: BankStatement
    entries: List[Entry]


class BankStatementService:
    """Records bank statements and links the entries they reconcile."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def record_statement(self, organization_id: str, user_id: str, payload: BankStatementCreate) -> RecordedStatement:
        bank_account = await get_entity_by_id(
            self.db,
            BankAccount,
            payload.bank_account_id,
            organization_id,
            "BANK_ACCOUNT_NOT_FOUND",
            "The specified bank account does not exist for this organization.",
        )

        entry_ids = list(dict.fromkeys(payload.entry_ids))
        entries: List[Entry] = []
        net_change = Decimal("0.00")

        if entry_ids:
            result = await self.db.execute(
                select(Entry).where(Entry.organization_id == organization_id, Entry.id.in_(entry_ids))
            )
            entries = list(result.scalars().all())
            if len(entries) != len(entry_ids):
                raise NotFoundError("ENTRY_NOT_FOUND", "One or more entries were not found in the organization.")

            for entry in entries:
                if entry.bank_statement_id is not None:
                    raise ConflictError(
                        "ENTRY_ALREADY_LINKED_TO_STATEMENT",
                        f"Entry {entry.reference} is already linked to a bank statement.",
                    )

            bank_lines = await self.db.execute(
                select(EntryLine.entry_id, EntryLine.debit, EntryLine.credit).where(
                    EntryLine.organization_id == organization_id,
                    EntryLine.entry_id.in_(entry_ids),
                    EntryLine.account_id == bank_account.account_id,
                )
            )
            movement_by_entry: Dict[str, Decimal] = {}
            for entry_id, debit, credit in bank_lines.all():
                movement_by_entry[entry_id] = movement_by_entry.get(entry_id, Decimal("0.00")) + debit - credit

            for entry in entries:
                if entry.id not in movement_by_entry:
                    raise DomainRuleError(
                        "ENTRY_MISSING_BANK_LINE",
                        f"Entry {entry.reference} has no line on the bank account's ledger account.",
                    )
            net_change = sum(movement_by_entry.values(), Decimal("0.00"))

        expected_closing = payload.opening_balance + net_change
        if expected_closing != payload.closing_balance:
            raise DomainRuleError(
                "BANK_STATEMENT_BALANCE_MISMATCH",
                f"Closing balance {payload.closing_balance} does not match opening balance "
                f"plus linked entries ({expected_closing}).",
            )

        statement = BankStatement(
            organization_id=organization_id,
            bank_account_id=bank_account.id,
            statement_date=payload.statement_date,
            opening_balance=payload.opening_balance,
            closing_balance=payload.closing_balance,
        )
        self.db.add(statement)
        await self.db.flush()

        if entry_ids:
            result = await self.db.execute(
                update(Entry)
                .where(
                    Entry.organization_id == organization_id,
                    Entry.id.in_(entry_ids),
                    Entry.bank_statement_id.is_(None),
                )
                .values(bank_statement_id=statement.id)
            )
            if result.rowcount != len(entry_ids):
                # Linked by a concurrent statement since the check above.
                raise ConflictError(
                    "ENTRY_ALREADY_LINKED_TO_STATEMENT",
                    "One or more entries were linked to another bank statement.",
                )

        await self.audit.record(
            organization_id,
            user_id,
            "bank_statement.create",
            "bank_statement",
            statement.id,
            {"bank_account_id": bank_account.id, "entry_ids": entry_ids},
        )
        logger.info(f"[BANK] Statement {statement.id} recorded with {len(entry_ids)} linked entries")

        entries.sort(key=lambda e: (e.date, e.reference))
        return RecordedStatement(statement=statement, entries=entries)
