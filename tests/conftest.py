import uuid
from datetime import date
from typing import Dict, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from ledger_api.core.config import Settings
from ledger_api.core.db import Database
from ledger_api.core.idempotency import InMemoryIdempotencyStore
from ledger_api.core.security import create_access_token
from ledger_api.main import create_app
from ledger_api.models import (
    Account,
    BankAccount,
    FiscalYear,
    Journal,
    Organization,
    Project,
)
from ledger_api.models.base import utcnow
from tests.helpers import Books


def register_sqlite_functions(engine: AsyncEngine) -> None:
    """SQLite stand-in for PostgreSQL's set_config()."""

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("set_config", 3, lambda name, value, is_local: value)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        jwt_secret_key="test-secret",
        idempotency_backend="memory",
        log_level="WARNING",
    )


@pytest.fixture
async def database(settings):
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    register_sqlite_functions(engine)
    db = Database(settings, engine=engine)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def idempotency_store() -> InMemoryIdempotencyStore:
    return InMemoryIdempotencyStore()


@pytest.fixture
def app(settings, database, idempotency_store):
    return create_app(settings=settings, database=database, idempotency_store=idempotency_store)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def failing_client(app):
    """Client that turns unhandled server errors into 500 responses instead of raising."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def books(database) -> Books:
    """Two tenants with a chart of accounts, one open and one locked fiscal year."""
    org_id = str(uuid.uuid4())
    other_org_id = str(uuid.uuid4())
    locked_org_id = str(uuid.uuid4())

    async with database.session_factory() as session:
        session.add_all(
            [
                Organization(id=org_id, name="Association Alpha"),
                Organization(id=other_org_id, name="Association Beta"),
                Organization(
                    id=locked_org_id,
                    name="Association Gamma",
                    access_locked_at=utcnow(),
                    access_locked_by="platform-admin",
                    access_locked_reason="Unpaid subscription",
                ),
            ]
        )
        await session.flush()

        fiscal_year = FiscalYear(
            organization_id=org_id, label="FY2025", start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)
        )
        closed_year = FiscalYear(
            organization_id=org_id,
            label="FY2024",
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            locked_at=utcnow(),
        )
        bank_journal = Journal(organization_id=org_id, code="BAN", name="Banque", type="BANK")
        general_journal = Journal(organization_id=org_id, code="OD", name="Operations diverses", type="GENERAL")
        accounts = {
            "bank": Account(organization_id=org_id, code="512000", name="Banque", type="ASSET"),
            "revenue": Account(organization_id=org_id, code="706000", name="Prestations", type="REVENUE"),
            "expense": Account(organization_id=org_id, code="606000", name="Achats", type="EXPENSE"),
        }
        other_account = Account(organization_id=other_org_id, code="512000", name="Banque", type="ASSET")
        project = Project(organization_id=org_id, code="P-01", name="Summer camp")
        session.add_all([fiscal_year, closed_year, bank_journal, general_journal, project, other_account, *accounts.values()])
        await session.flush()

        bank_account = BankAccount(
            organization_id=org_id, name="Main account", iban=None, account_id=accounts["bank"].id
        )
        session.add(bank_account)
        await session.commit()

        return Books(
            organization_id=org_id,
            other_organization_id=other_org_id,
            locked_organization_id=locked_org_id,
            fiscal_year_id=fiscal_year.id,
            closed_fiscal_year_id=closed_year.id,
            journal_id=bank_journal.id,
            general_journal_id=general_journal.id,
            bank_account_id=bank_account.id,
            project_id=project.id,
            accounts={name: account.id for name, account in accounts.items()},
            other_account_id=other_account.id,
        )


@pytest.fixture
def make_headers(settings):
    def _make(
        organization_id: Optional[str],
        roles: Iterable[str] = ("TREASURER",),
        super_admin: bool = False,
        user_id: str = "user-1",
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, str]:
        token = create_access_token(settings, user_id, organization_id, roles=roles, super_admin=super_admin)
        headers = {"Authorization": f"Bearer {token}"}
        if idempotency_key is not None:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    return _make


@pytest.fixture
def headers(books, make_headers) -> Dict[str, str]:
    return make_headers(books.organization_id)


