from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from ledger_api.models.base import Base, new_id, utcnow

MONEY = Numeric(14, 2)


class FiscalYear(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)

    label = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    locked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "label", name="fiscal_year_org_label_key"),
        CheckConstraint("end_date >= start_date", name="fiscal_year_range_check"),
    )

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @property
    def status(self) -> str:
        return "LOCKED" if self.locked_at else "OPEN"


class Journal(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)

    code = Column(String, nullable=False)  # Stored upper-case, e.g. BAN, VEN, OD
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="GENERAL")  # GENERAL, BANK, SALES, PURCHASES, CASH, OTHER

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="journal_org_code_key"),
    )


class Account(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)

    code = Column(String, nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="account_org_code_key"),
    )


class Project(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)

    code = Column(String, nullable=False)
    name = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="project_org_code_key"),
    )


class Entry(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)
    fiscal_year_id = Column(String, ForeignKey("fiscal_year.id"), nullable=False, index=True)
    journal_id = Column(String, ForeignKey("journal.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    reference = Column(String, nullable=False)  # {year}-{journal code}-{sequence:06}
    memo = Column(String, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    created_by = Column(String, nullable=False)

    bank_statement_id = Column(String, ForeignKey("bank_statement.id"), nullable=True, index=True)
    reversal_of_id = Column(String, ForeignKey("entry.id"), nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    lines = relationship(
        "EntryLine",
        back_populates="entry",
        order_by="EntryLine.position",
        cascade="all, delete-orphan",
    )
    journal = relationship("Journal")
    fiscal_year = relationship("FiscalYear")

    __table_args__ = (
        UniqueConstraint("organization_id", "reference", name="entry_org_reference_key"),
        Index("idx_entry_org_fiscal_year_date", "organization_id", "fiscal_year_id", "date"),
    )

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None


class EntryLine(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)
    entry_id = Column(String, ForeignKey("entry.id"), nullable=False, index=True)
    account_id = Column(String, ForeignKey("account.id"), nullable=False, index=True)
    project_id = Column(String, ForeignKey("project.id"), nullable=True)

    position = Column(Integer, nullable=False, default=0)
    debit = Column(MONEY, nullable=False, default=0)
    credit = Column(MONEY, nullable=False, default=0)

    entry = relationship("Entry", back_populates="lines")
    account = relationship("Account")

    __table_args__ = (
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="entry_line_single_side_check",
        ),
    )


class SequenceNumber(Base):
    """Next reference number per (organization, fiscal year, journal)."""

    organization_id = Column(String, ForeignKey("organization.id"), nullable=False)
    fiscal_year_id = Column(String, ForeignKey("fiscal_year.id"), nullable=False)
    journal_id = Column(String, ForeignKey("journal.id"), nullable=False)

    next_value = Column(BigInteger, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        PrimaryKeyConstraint("organization_id", "fiscal_year_id", "journal_id", name="sequence_number_pkey"),
    )
