import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Append-only audit sink, written in the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        organization_id: str,
        user_id: Optional[str],
        action: str,
        entity: str,
        entity_id: Optional[str],
        payload: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        log = AuditLog(
            organization_id=organization_id,
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            payload=payload,
        )
        self.db.add(log)
        await self.db.flush()
        logger.info(f"[AUDIT] {action} {entity}={entity_id} org={organization_id} user={user_id}")
        return log
