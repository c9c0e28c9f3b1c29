from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from ledger_api.models.base import Base, new_id, utcnow


class ComplianceExport(Base):
    """One row per generated FEC file, kept as proof of what was handed over."""

    id = Column(String, primary_key=True, default=new_id)
    organization_id = Column(String, ForeignKey("organization.id"), nullable=False, index=True)
    fiscal_year_id = Column(String, ForeignKey("fiscal_year.id"), nullable=False, index=True)

    format = Column(String, nullable=False, default="FEC")
    checksum = Column(String(64), nullable=False)  # SHA-256 hex digest of the UTF-8 file
    row_count = Column(Integer, nullable=False)
    created_by = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
