import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_api.core.errors import InfrastructureError

logger = logging.getLogger(__name__)

# One round trip: creates the counter on first use, otherwise increments it
# under the row lock, and returns the value reserved for this caller.
RESERVE_SEQUENCE_SQL = text(
    """
    INSERT INTO sequence_number (organization_id, fiscal_year_id, journal_id, next_value, updated_at)
    VALUES (:organization_id, :fiscal_year_id, :journal_id, 2, CURRENT_TIMESTAMP)
    ON CONFLICT (organization_id, fiscal_year_id, journal_id)
    DO UPDATE SET next_value = sequence_number.next_value + 1, updated_at = CURRENT_TIMESTAMP
    RETURNING next_value - 1 AS current_value
    """
)


class SequenceService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve(self, organization_id: str, fiscal_year_id: str, journal_id: str) -> int:
        """Reserve the next number for (organization, fiscal year, journal). Never reused; gaps are allowed."""
        result = await self.db.execute(
            RESERVE_SEQUENCE_SQL,
            {
                "organization_id": organization_id,
                "fiscal_year_id": fiscal_year_id,
                "journal_id": journal_id,
            },
        )
        row = result.first()
        if row is None or row.current_value is None:
            logger.error(f"[SEQUENCE] No value returned for journal {journal_id} in fiscal year {fiscal_year_id}")
            raise InfrastructureError(
                "SEQUENCE_RESERVATION_FAILED",
                "Failed to reserve a sequence number for the entry.",
            )
        return int(row.current_value)
