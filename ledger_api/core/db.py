import logging
import re
import uuid
from typing import Iterable, List

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import ORMExecuteState, Session

from ledger_api.core.config import Settings
from ledger_api.core.errors import ValidationError
from ledger_api.models.base import Base

logger = logging.getLogger(__name__)

TENANT_SETTING = "app.current_org"
TENANT_CONTEXT_OPTION = "tenant_context"
TENANT_SCOPED_KEY = "tenant_scoped"
TENANT_ID_KEY = "organization_id"

# Every table carrying organization_id is protected by the same policy.
TENANT_TABLES = (
    "fiscal_year",
    "journal",
    "account",
    "project",
    "entry",
    "entry_line",
    "sequence_number",
    "bank_account",
    "bank_statement",
    "compliance_export",
    "audit_log",
)


class TenantContextError(RuntimeError):
    """A statement was issued on a tenant session before the tenant context was applied."""


class TenantScopedSession(Session):
    """Session class used for tenant transactions; see ``_require_tenant_context``."""


@event.listens_for(TenantScopedSession, "do_orm_execute")
def _require_tenant_context(orm_execute_state: ORMExecuteState) -> None:
    if orm_execute_state.execution_options.get(TENANT_CONTEXT_OPTION):
        return
    if not orm_execute_state.session.info.get(TENANT_SCOPED_KEY):
        raise TenantContextError("Tenant context must be applied before any tenant-scoped query")


def get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format using psycopg driver."""
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    elif url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)

    if "channel_binding=" in url:
        url = re.sub(r'[&?]channel_binding=[^&]*', '', url)
        url = url.replace('?&', '?').rstrip('?')

    return url


def validate_organization_id(organization_id: str) -> str:
    try:
        return str(uuid.UUID(str(organization_id)))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(
            "INVALID_ORGANIZATION_ID",
            "Organization identifier must be a UUID.",
        )


async def apply_tenant_context(session: AsyncSession, organization_id: str, settings: Settings) -> None:
    """Pin the current transaction to a tenant. Must be the first statement of the transaction."""
    organization_id = validate_organization_id(organization_id)
    params = {
        "tenant_setting": TENANT_SETTING,
        "organization_id": organization_id,
    }
    await session.execute(
        text("SELECT set_config(:tenant_setting, :organization_id, true)"),
        params,
        execution_options={TENANT_CONTEXT_OPTION: True},
    )

    timeouts = {
        "statement_timeout": settings.db_statement_timeout_ms,
        "lock_timeout": settings.db_lock_timeout_ms,
        "idle_in_transaction_session_timeout": settings.db_idle_in_transaction_timeout_ms,
    }
    for name, value in timeouts.items():
        if value > 0:
            await session.execute(
                text("SELECT set_config(:name, :value, true)"),
                {"name": name, "value": f"{value}ms"},
                execution_options={TENANT_CONTEXT_OPTION: True},
            )

    session.info[TENANT_ID_KEY] = organization_id
    session.info[TENANT_SCOPED_KEY] = True


class Database:
    """Process-wide connection pool. Created at startup, disposed at shutdown."""

    def __init__(self, settings: Settings, engine: AsyncEngine | None = None) -> None:
        self.settings = settings
        self.engine = engine or self._create_engine(settings)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
        )
        self.tenant_session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            sync_session_class=TenantScopedSession,
        )

    @staticmethod
    def _create_engine(settings: Settings) -> AsyncEngine:
        database_url = get_async_database_url(settings.database_url)
        logger.info(f"[DB] Creating database engine with URL: {database_url.split('@')[0]}@***")
        options = {
            "future": True,
            "echo": settings.debug,
            "pool_pre_ping": True,  # Verify connections before using
            "pool_recycle": 3600,
        }
        if database_url.startswith("postgresql"):
            options.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                connect_args={"connect_timeout": 10},
            )
        return create_async_engine(database_url, **options)

    async def create_all(self) -> None:
        """Create all tables. In production use Alembic migrations instead."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"[DB] ERROR: Database connection test failed: {type(e).__name__}: {e}")
            return False

    async def dispose(self) -> None:
        logger.info("[DB] Disposing connection pool")
        await self.engine.dispose()


def rls_statements(tables: Iterable[str] = TENANT_TABLES) -> List[str]:
    """DDL enabling row-level security on every tenant table."""
    statements = []
    for table in tables:
        statements.extend(
            [
                f'ALTER TABLE "{table}" ENABLE ROW LEVEL SECURITY',
                f'ALTER TABLE "{table}" FORCE ROW LEVEL SECURITY',
                f'DROP POLICY IF EXISTS tenant_isolation ON "{table}"',
                (
                    f'CREATE POLICY tenant_isolation ON "{table}" '
                    f"USING (organization_id = current_setting('{TENANT_SETTING}', true)) "
                    f"WITH CHECK (organization_id = current_setting('{TENANT_SETTING}', true))"
                ),
            ]
        )
    return statements
