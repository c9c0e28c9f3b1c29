"""SQLAlchemy models for the ledger backend."""

from ledger_api.models.organization import Organization  # noqa: F401
from ledger_api.models.ledger import (  # noqa: F401
    Account,
    Entry,
    EntryLine,
    FiscalYear,
    Journal,
    Project,
    SequenceNumber,
)
from ledger_api.models.banking import BankAccount, BankStatement  # noqa: F401
from ledger_api.models.compliance import ComplianceExport  # noqa: F401
from ledger_api.models.audit_log import AuditLog  # noqa: F401
