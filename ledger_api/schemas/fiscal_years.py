from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class FiscalYearCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date


class FiscalYearUpdate(BaseModel):
    label: Optional[str] = Field(default=None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class FiscalYearLock(BaseModel):
    locked: bool


class FiscalYearResponse(BaseModel):
    id: str
    organization_id: str
    label: str
    start_date: date
    end_date: date
    locked_at: Optional[datetime] = None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}

