"""
FEC (Fichier des Écritures Comptables) export.

The 18-column, semicolon-separated file French tax authorities expect for a
closed fiscal year. Each export is recorded with the SHA-256 checksum of
the exact bytes handed out.
"""

import csv
import hashlib
import io
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import AuthorizationError
from ledger_api.models.compliance import ComplianceExport
from ledger_api.models.ledger import Account, Entry, EntryLine, FiscalYear, Journal
from ledger_api.services.audit_log_service import AuditService
from ledger_api.services.fiscal_years import FiscalYearService

logger = logging.getLogger(__name__)

FEC_COLUMNS = [
    "JournalCode",
    "JournalLib",
    "EcritureNum",
    "EcritureDate",
    "CompteNum",
    "CompteLib",
    "CompAuxNum",
    "CompAuxLib",
    "PieceRef",
    "PieceDate",
    "EcritureLib",
    "Debit",
    "Credit",
    "EcritureLet",
    "DateLet",
    "ValidDate",
    "Montantdevise",
    "Idevise",
]


@dataclass
class FecExport:
    export: ComplianceExport
    fiscal_year: FiscalYear
    content: str
    checksum: str
    row_count: int

    @property
    def filename(self) -> str:
        return f"FEC_{self.fiscal_year.organization_id}_{self.fiscal_year.label}.csv"


def format_fec_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def format_amount(value: Decimal) -> str:
    return f"{Decimal(value):.2f}"


def render_fec(rows: List[List[str]]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, delimiter=";", lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(FEC_COLUMNS)
    writer.writerows(rows)
    return output.getvalue()


class ComplianceExportService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.fiscal_years = FiscalYearService(db)
        self.audit = AuditService(db)

    async def generate_fec(self, organization_id: str, user_id: str, fiscal_year_id: str) -> FecExport:
        fiscal_year = await self.fiscal_years.get_fiscal_year(organization_id, fiscal_year_id)
        if not fiscal_year.is_locked:
            raise AuthorizationError("FISCAL_YEAR_NOT_LOCKED", "FEC export requires a locked fiscal year.")

        result = await self.db.execute(
            select(EntryLine, Entry, Journal, Account)
            .join(Entry, EntryLine.entry_id == Entry.id)
            .join(Journal, Entry.journal_id == Journal.id)
            .join(Account, EntryLine.account_id == Account.id)
            .where(
                EntryLine.organization_id == organization_id,
                Entry.fiscal_year_id == fiscal_year.id,
            )
            .order_by(Entry.date, Entry.reference, Entry.id, Account.code, EntryLine.position, EntryLine.id)
        )

        rows = []
        for line, entry, journal, account in result.all():
            entry_date = format_fec_date(entry.date)
            rows.append(
                [
                    journal.code,
                    journal.name,
                    entry.reference,
                    entry_date,
                    account.code,
                    account.name,
                    "",
                    "",
                    entry.reference,
                    entry_date,
                    entry.memo or account.name,
                    format_amount(line.debit),
                    format_amount(line.credit),
                    "",
                    "",
                    entry_date,
                    "",
                    "",
                ]
            )

        content = render_fec(rows)
        checksum = hashlib.sha256(content.encode("utf-8")).hexdigest()

        export = ComplianceExport(
            organization_id=organization_id,
            fiscal_year_id=fiscal_year.id,
            format="FEC",
            checksum=checksum,
            row_count=len(rows),
            created_by=user_id,
        )
        self.db.add(export)
        await self.db.flush()
        await self.audit.record(
            organization_id,
            user_id,
            "fiscal_year.export",
            "fiscal_year",
            fiscal_year.id,
            {"format": "FEC", "checksum": checksum, "row_count": len(rows)},
        )
        logger.info(f"[COMPLIANCE] FEC export for {fiscal_year.label}: {len(rows)} rows, sha256={checksum}")

        return FecExport(export=export, fiscal_year=fiscal_year, content=content, checksum=checksum, row_count=len(rows))
