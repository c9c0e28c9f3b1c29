"""
PostgreSQL-only behaviour: row-level security and concurrent sequence reservation.

Set TEST_DATABASE_URL to a scratch database reachable by a role that is
neither superuser nor BYPASSRLS, otherwise the policies are not enforced.
"""

import asyncio
import os
import uuid
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError

from ledger_api.core.config import Settings
from ledger_api.core.db import Database, apply_tenant_context, rls_statements
from ledger_api.core.idempotency import InMemoryIdempotencyStore
from ledger_api.core.security import create_access_token
from ledger_api.main import create_app
from ledger_api.models import Account, Entry, FiscalYear, Journal, Organization
from ledger_api.models.base import Base

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not set"),
]


@pytest.fixture
def pg_settings() -> Settings:
    return Settings(database_url=TEST_DATABASE_URL, jwt_secret_key="test-secret", log_level="WARNING")


@pytest.fixture
async def pg_database(pg_settings):
    db = Database(pg_settings)
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        for statement in rls_statements():
            await conn.execute(text(statement))
    yield db
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await db.dispose()


async def seed_tenant(database: Database, settings: Settings, name: str) -> dict:
    organization_id = str(uuid.uuid4())
    async with database.session_factory() as session:
        session.add(Organization(id=organization_id, name=name))
        await session.commit()

    async with database.tenant_session_factory() as session:
        async with session.begin():
            await apply_tenant_context(session, organization_id, settings)
            fiscal_year = FiscalYear(
                organization_id=organization_id, label="FY2025", start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)
            )
            journal = Journal(organization_id=organization_id, code="BAN", name="Banque", type="BANK")
            bank = Account(organization_id=organization_id, code="512000", name="Banque", type="ASSET")
            revenue = Account(organization_id=organization_id, code="706000", name="Prestations", type="REVENUE")
            session.add_all([fiscal_year, journal, bank, revenue])
            await session.flush()
            return {
                "organization_id": organization_id,
                "fiscal_year_id": fiscal_year.id,
                "journal_id": journal.id,
                "bank_id": bank.id,
                "revenue_id": revenue.id,
            }


async def test_concurrent_entries_get_distinct_consecutive_references(pg_settings, pg_database):
    tenant = await seed_tenant(pg_database, pg_settings, "Association Alpha")
    app = create_app(settings=pg_settings, database=pg_database, idempotency_store=InMemoryIdempotencyStore())
    token = create_access_token(pg_settings, "user-1", tenant["organization_id"], roles=("TREASURER",))
    payload = {
        "fiscal_year_id": tenant["fiscal_year_id"],
        "journal_id": tenant["journal_id"],
        "date": "2025-05-01",
        "lines": [
            {"account_id": tenant["bank_id"], "debit": "10.00"},
            {"account_id": tenant["revenue_id"], "credit": "10.00"},
        ],
    }

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        responses = await asyncio.gather(
            *[
                client.post(
                    f"/api/v1/orgs/{tenant['organization_id']}/entries",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                for _ in range(10)
            ]
        )

    assert [r.status_code for r in responses] == [201] * 10
    references = sorted(r.json()["reference"] for r in responses)
    assert references == [f"2025-BAN-{n:06d}" for n in range(1, 11)]


async def test_row_level_security_isolates_tenants(pg_settings, pg_database):
    alpha = await seed_tenant(pg_database, pg_settings, "Association Alpha")
    beta = await seed_tenant(pg_database, pg_settings, "Association Beta")

    async with pg_database.tenant_session_factory() as session:
        async with session.begin():
            await apply_tenant_context(session, alpha["organization_id"], pg_settings)
            journals = (await session.execute(select(Journal))).scalars().all()
            assert {j.organization_id for j in journals} == {alpha["organization_id"]}
            assert await session.get(Account, beta["bank_id"]) is None

    with pytest.raises(DBAPIError):
        async with pg_database.tenant_session_factory() as session:
            async with session.begin():
                await apply_tenant_context(session, alpha["organization_id"], pg_settings)
                session.add(Journal(organization_id=beta["organization_id"], code="XX", name="Smuggled"))


async def test_session_without_tenant_context_sees_nothing(pg_settings, pg_database):
    await seed_tenant(pg_database, pg_settings, "Association Alpha")

    async with pg_database.session_factory() as session:
        assert (await session.execute(select(Entry))).scalars().all() == []
        assert (await session.execute(select(Journal))).scalars().all() == []


async def test_tenant_setting_is_transaction_local(pg_settings, pg_database):
    tenant = await seed_tenant(pg_database, pg_settings, "Association Alpha")

    async with pg_database.tenant_session_factory() as session:
        async with session.begin():
            await apply_tenant_context(session, tenant["organization_id"], pg_settings)
            inside = (await session.execute(text("SELECT current_setting('app.current_org', true)"))).scalar()
            timeout = (await session.execute(text("SHOW statement_timeout"))).scalar()
        assert inside == tenant["organization_id"]
        assert timeout == "15s"

    async with pg_database.engine.connect() as conn:
        after = (await conn.execute(text("SELECT current_setting('app.current_org', true)"))).scalar()
    assert after in (None, "")
