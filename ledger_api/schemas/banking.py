from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def normalize_iban(value: str) -> str:
    return "".join(value.split()).upper()


def is_valid_iban(value: str) -> bool:
    """ISO 13616 mod-97 check."""
    iban = normalize_iban(value)
    if not 15 <= len(iban) <= 34 or not iban.isalnum():
        return False
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(char, 36)) for char in rearranged)
    return int(digits) % 97 == 1


class BankAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    iban: Optional[str] = None
    account_id: str

    @field_validator("iban")
    @classmethod
    def check_iban(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if not is_valid_iban(value):
            raise ValueError("IBAN is invalid.")
        return normalize_iban(value)


class BankStatementCreate(BaseModel):
    bank_account_id: str
    statement_date: date
    opening_balance: Decimal = Field(..., max_digits=14, decimal_places=2)
    closing_balance: Decimal = Field(..., max_digits=14, decimal_places=2)
    entry_ids: List[str] = Field(default_factory=list)


class LinkedEntry(BaseModel):
    id: str
    reference: str
    date: date

    model_config = {"from_attributes": True}


class BankStatementResponse(BaseModel):
    id: str
    bank_account_id: str
    statement_date: date
    opening_balance: Decimal
    closing_balance: Decimal
    created_at: datetime
    entries: List[LinkedEntry]
