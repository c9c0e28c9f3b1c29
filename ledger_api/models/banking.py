from sqlalchemy import Column, Date, DateTime, ForeignKey, String, UniqueConstraint, func

from ledger_api.models.base import Base, new_id, utcnow
from ledger_api.models.ledger import MONEY


class BankAccount(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    iban = Column(String, nullable=True)
    account_id = Column(String, ForeignKey("account.id"), nullable=False)  # Ledger account mirrored by this bank

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="bank_account_org_name_key"),
    )


class BankStatement(Base):
    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)
    bank_account_id = Column(String, ForeignKey("bank_account.id"), nullable=False, index=True)

    statement_date = Column(Date, nullable=False)
    opening_balance = Column(MONEY, nullable=False)
    closing_balance = Column(MONEY, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
