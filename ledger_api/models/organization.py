from sqlalchemy import Column, DateTime, String, func

from ledger_api.models.base import Base, new_id, utcnow


class Organization(Base):
    """Tenant. Not row-level secured: the coordinator reads it before any tenant transaction."""

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)

    # Set by a platform administrator to cut off all tenant access
    access_locked_at = Column(DateTime, nullable=True)
    access_locked_by = Column(String, nullable=True)
    access_locked_reason = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    @property
    def is_access_locked(self) -> bool:
        return self.access_locked_at is not None
