from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class JournalType(str, Enum):
    GENERAL = "GENERAL"
    BANK = "BANK"
    SALES = "SALES"
    PURCHASES = "PURCHASES"
    CASH = "CASH"
    OTHER = "OTHER"


class AccountType(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"
    OFF_BALANCE = "OFF_BALANCE"


class JournalCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=8, pattern=r"^\s*[A-Za-z0-9]+\s*$")
    name: str = Field(..., min_length=1, max_length=255)
    type: JournalType = JournalType.GENERAL

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class JournalResponse(BaseModel):
    id: str
    code: str
    name: str
    type: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountCreate(BaseModel):
    code: str = Field(..., pattern=r"^\d{3,10}$")  # Plan comptable: 3 to 10 digits
    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType


class AccountResponse(BaseModel):
    id: str
    code: str
    name: str
    type: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProjectCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    name: str = Field(..., min_length=1, max_length=255)


class ProjectResponse(BaseModel):
    id: str
    code: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BankAccountResponse(BaseModel):
    id: str
    name: str
    iban: Optional[str] = None
    account_id: str
    created_at: datetime

    model_config = {"from_attributes": True}
