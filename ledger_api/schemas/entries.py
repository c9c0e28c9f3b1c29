from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, model_validator

Amount = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class EntryLineCreate(BaseModel):
    account_id: str
    project_id: Optional[str] = None
    debit: Amount = Decimal("0")
    credit: Amount = Decimal("0")

    @model_validator(mode="after")
    def check_single_side(self) -> "EntryLineCreate":
        has_debit = self.debit > 0
        has_credit = self.credit > 0
        if has_debit and has_credit:
            raise ValueError("A line cannot have both debit and credit amounts.")
        if not has_debit and not has_credit:
            raise ValueError("Each line must have either a debit or a credit amount.")
        return self


class EntryCreate(BaseModel):
    fiscal_year_id: str
    journal_id: str
    date: date
    memo: Optional[str] = Field(default=None, max_length=1024)
    lines: List[EntryLineCreate] = Field(..., min_length=2)


class EntryReverse(BaseModel):
    """Counter-entry request. Journal defaults to the original entry's."""
    fiscal_year_id: str
    date: date
    journal_id: Optional[str] = None
    memo: Optional[str] = Field(default=None, max_length=1024)


class EntryLineResponse(BaseModel):
    id: str
    account_id: str
    project_id: Optional[str] = None
    debit: Decimal
    credit: Decimal

    model_config = {"from_attributes": True}


class EntryResponse(BaseModel):
    id: str
    organization_id: str
    fiscal_year_id: str
    journal_id: str
    date: date
    reference: str
    memo: Optional[str] = None
    locked_at: Optional[datetime] = None
    created_by: str
    bank_statement_id: Optional[str] = None
    reversal_of_id: Optional[str] = None
    created_at: datetime
    lines: List[EntryLineResponse]

    model_config = {"from_attributes": True}
