from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import func, select

from ledger_api.core.db import Database

API = "/api/v1"


@dataclass
class Books:
    organization_id: str
    other_organization_id: str
    locked_organization_id: str
    fiscal_year_id: str
    closed_fiscal_year_id: str
    journal_id: str
    general_journal_id: str
    bank_account_id: str
    project_id: str
    accounts: Dict[str, str] = field(default_factory=dict)
    other_account_id: str = ""

    def url(self, path: str, organization_id: str | None = None) -> str:
        return f"{API}/orgs/{organization_id or self.organization_id}{path}"


def entry_payload(books: Books, amount: str = "100.00", entry_date: str = "2025-03-15", **overrides) -> dict:
    payload = {
        "fiscal_year_id": books.fiscal_year_id,
        "journal_id": books.journal_id,
        "date": entry_date,
        "memo": "Membership fee",
        "lines": [
            {"account_id": books.accounts["bank"], "debit": amount},
            {"account_id": books.accounts["revenue"], "credit": amount},
        ],
    }
    payload.update(overrides)
    return payload


async def count_rows(database: Database, model, **filters) -> int:
    async with database.session_factory() as session:
        query = select(func.count()).select_from(model)
        for column, value in filters.items():
            query = query.where(getattr(model, column) == value)
        return (await session.execute(query)).scalar_one()
