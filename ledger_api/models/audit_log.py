"""
Audit log for ledger mutations.

Append-only. Rows are written inside the tenant transaction of the request
that performed the action, so an audited change and its audit row commit or
roll back together.
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, func

from ledger_api.models.base import Base, new_id, utcnow


class AuditLog(Base):
    id = Column(String, primary_key=True, default=new_id)

    # When
    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True)

    # Who
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False)
    user_id = Column(String, nullable=True, index=True)

    # What
    action = Column(String, nullable=False)
    # Actions:
    # - entry.create, entry.lock, entry.reverse
    # - fiscal_year.create, fiscal_year.update, fiscal_year.lock, fiscal_year.unlock
    # - fiscal_year.export
    # - bank_statement.create
    entity = Column(String, nullable=False)  # entry, fiscal_year, bank_statement
    entity_id = Column(String, nullable=True)

    payload = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_audit_org_created", "organization_id", "created_at"),
        Index("idx_audit_entity", "entity", "entity_id"),
    )
