"""
Double-entry rules shared by entry creation and reversal.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from ledger_api.core.errors import AuthorizationError, DomainRuleError
from ledger_api.models.ledger import FiscalYear

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LineAmounts:
    account_id: str
    debit: Decimal
    credit: Decimal
    project_id: str | None = None


def entry_totals(lines: Iterable[LineAmounts]) -> tuple[Decimal, Decimal]:
    total_debit = ZERO
    total_credit = ZERO
    for line in lines:
        total_debit += line.debit
        total_credit += line.credit
    return total_debit, total_credit


def ensure_balanced(lines: Sequence[LineAmounts]) -> Decimal:
    """Return the entry total; debit and credit sides must match and be non-zero."""
    total_debit, total_credit = entry_totals(lines)
    if total_debit != total_credit:
        raise DomainRuleError(
            "ENTRY_NOT_BALANCED",
            f"Sum of debit lines ({total_debit}) must equal sum of credit lines ({total_credit}).",
        )
    if total_debit == 0:
        raise DomainRuleError("ENTRY_TOTAL_ZERO", "Entry must have a non-zero total amount.")
    return total_debit


def ensure_open_for_posting(fiscal_year: FiscalYear, entry_date: date) -> None:
    if fiscal_year.is_locked:
        raise AuthorizationError(
            "FISCAL_YEAR_LOCKED",
            "The fiscal year is locked and cannot accept new entries.",
        )
    if entry_date < fiscal_year.start_date or entry_date > fiscal_year.end_date:
        raise DomainRuleError(
            "ENTRY_DATE_OUT_OF_RANGE",
            "Entry date must fall within the fiscal year boundaries.",
        )


def swap_sides(lines: Iterable[LineAmounts]) -> list[LineAmounts]:
    return [
        LineAmounts(account_id=line.account_id, debit=line.credit, credit=line.debit, project_id=line.project_id)
        for line in lines
    ]
