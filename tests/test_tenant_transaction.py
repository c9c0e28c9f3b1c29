import uuid

import pytest
from sqlalchemy import select, text

from ledger_api.core.db import TENANT_ID_KEY, TENANT_SCOPED_KEY, TenantContextError
from ledger_api.core.errors import ValidationError
from ledger_api.core.tenant_transaction import TenantTransaction, TransactionState
from ledger_api.models import Journal
from tests.helpers import count_rows


def _transaction(database, settings, organization_id):
    return TenantTransaction(database.tenant_session_factory, organization_id, settings)


async def test_open_applies_tenant_context(database, settings, books):
    tx = _transaction(database, settings, books.organization_id)
    assert tx.state == TransactionState.PENDING

    session = await tx.open()

    assert tx.state == TransactionState.READY
    assert session.info[TENANT_SCOPED_KEY] is True
    assert session.info[TENANT_ID_KEY] == books.organization_id
    await tx.rollback("test")


async def test_commit_persists_and_is_idempotent(database, settings, books):
    tx = _transaction(database, settings, books.organization_id)
    session = await tx.open()
    session.add(Journal(organization_id=books.organization_id, code="VEN", name="Ventes", type="SALES"))

    await tx.commit()
    await tx.commit()
    await tx.rollback("ignored after commit")

    assert tx.state == TransactionState.COMMITTED
    assert await count_rows(database, Journal, code="VEN") == 1


async def test_rollback_discards_and_is_idempotent(database, settings, books):
    tx = _transaction(database, settings, books.organization_id)
    session = await tx.open()
    session.add(Journal(organization_id=books.organization_id, code="ACH", name="Achats", type="PURCHASES"))
    await session.flush()

    await tx.rollback("client error")
    await tx.rollback("again")

    assert tx.state == TransactionState.ROLLED_BACK
    assert await count_rows(database, Journal, code="ACH") == 0
    with pytest.raises(RuntimeError):
        await tx.commit()


async def test_session_unavailable_outside_ready_state(database, settings, books):
    tx = _transaction(database, settings, books.organization_id)
    with pytest.raises(TenantContextError):
        tx.session

    await tx.open()
    await tx.commit()

    with pytest.raises(TenantContextError):
        tx.session


async def test_scoping_failure_rejects_open(database, settings):
    tx = _transaction(database, settings, "not-a-uuid")

    with pytest.raises(ValidationError) as exc_info:
        await tx.open()

    assert exc_info.value.code == "INVALID_ORGANIZATION_ID"
    assert tx.state == TransactionState.ROLLED_BACK


async def test_commit_failure_rolls_back(database, settings, books):
    tx = _transaction(database, settings, books.organization_id)
    session = await tx.open()
    # Violates the unique (organization_id, code) constraint when flushed at commit.
    session.add(Journal(organization_id=books.organization_id, code="BAN", name="Duplicate", type="BANK"))

    with pytest.raises(Exception):
        await tx.commit()

    assert tx.state == TransactionState.ROLLED_BACK
    assert await count_rows(database, Journal, code="BAN") == 1


async def test_tenant_session_refuses_unscoped_statements(database):
    async with database.tenant_session_factory() as session:
        with pytest.raises(TenantContextError):
            await session.execute(select(Journal))
        with pytest.raises(TenantContextError):
            await session.execute(text("SELECT 1"))


async def test_plain_session_is_not_guarded(database):
    async with database.session_factory() as session:
        result = await session.execute(text("SELECT 1"))
        assert result.scalar_one() == 1


async def test_open_twice_is_rejected(database, settings):
    tx = _transaction(database, settings, str(uuid.uuid4()))
    await tx.open()
    with pytest.raises(RuntimeError):
        await tx.open()
    await tx.rollback("done")
