"""
Request-scoped tenant transaction.

A database transaction whose first statement pins ``app.current_org`` for the
row-level security policies. The transaction is driven by an owner task that
holds ``session.begin()`` open until the request settles it:

    PENDING --open()--> READY --commit()----> COMMITTED
       |                  |
       +--(scope fails)---+--rollback()---> ROLLED_BACK

``commit()`` and ``rollback()`` are idempotent and both wait for the owner
task to finish, so by the time either returns the connection is back in the
pool.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledger_api.core.config import Settings
from ledger_api.core.db import TenantContextError, apply_tenant_context

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    PENDING = "pending"
    READY = "ready"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionAborted(Exception):
    """Raised inside the owner task to force a rollback."""


class TenantTransaction:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        organization_id: str,
        settings: Settings,
    ):
        self.organization_id = organization_id
        self.state = TransactionState.PENDING
        self._session_factory = session_factory
        self._settings = settings
        self._session: Optional[AsyncSession] = None
        self._ready: Optional[asyncio.Future] = None
        self._release: Optional[asyncio.Future] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def session(self) -> AsyncSession:
        if self.state != TransactionState.READY or self._session is None:
            raise TenantContextError(f"Tenant transaction is {self.state.value}, no session available")
        return self._session

    async def open(self) -> AsyncSession:
        """Begin the transaction and wait until the tenant context is applied."""
        if self._task is not None:
            raise RuntimeError("Tenant transaction already opened")

        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()
        self._release = loop.create_future()
        self._task = asyncio.create_task(self._run(), name=f"tenant-tx:{self.organization_id}")

        try:
            await asyncio.shield(self._ready)
        except BaseException:
            if not self._release.done():
                self._release.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self.state = TransactionState.ROLLED_BACK
            raise

        logger.debug(f"[TENANT_TX] Opened transaction for organization {self.organization_id}")
        return self.session

    async def commit(self) -> None:
        if self.state == TransactionState.COMMITTED:
            return
        if self.state != TransactionState.READY:
            raise RuntimeError(f"Cannot commit a tenant transaction that is {self.state.value}")

        if not self._release.done():
            self._release.set_result(None)
        try:
            await self._task
        except BaseException:
            self.state = TransactionState.ROLLED_BACK
            logger.error(f"[TENANT_TX] Commit failed for organization {self.organization_id}")
            raise
        self.state = TransactionState.COMMITTED
        logger.debug(f"[TENANT_TX] Committed transaction for organization {self.organization_id}")

    async def rollback(self, reason: Optional[str] = None) -> None:
        if self.state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK):
            return
        if self._task is None:
            self.state = TransactionState.ROLLED_BACK
            return

        if not self._release.done():
            self._release.set_exception(TransactionAborted(reason or "rolled back"))
        try:
            await self._task
        except TransactionAborted:
            pass
        except Exception as e:
            logger.error(
                f"[TENANT_TX] Rollback for organization {self.organization_id} failed: "
                f"{type(e).__name__}: {e}"
            )
        finally:
            self.state = TransactionState.ROLLED_BACK
        logger.debug(f"[TENANT_TX] Rolled back transaction for organization {self.organization_id} ({reason})")

    async def _run(self) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await apply_tenant_context(session, self.organization_id, self._settings)
                    self._session = session
                    self.state = TransactionState.READY
                    self._ready.set_result(session)
                    # Leaving this block normally commits, an exception rolls back.
                    await self._release
        except BaseException as exc:
            if not self._ready.done():
                if isinstance(exc, asyncio.CancelledError):
                    self._ready.cancel()
                else:
                    self._ready.set_exception(exc)
            raise
        finally:
            self._session = None
