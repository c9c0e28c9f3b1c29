import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from ledger_api.api import deps
from ledger_api.core.errors import ConflictError
from ledger_api.core.security import Principal
from ledger_api.middleware.tenant_transaction import resolve_target_organization
from ledger_api.models import Journal
from tests.helpers import API, count_rows


def make_request(path: str, headers=None, principal=None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()],
        "query_string": b"",
        "state": {"principal": principal},
    }
    return Request(scope)


def add_diagnostic_routes(app) -> None:
    router = APIRouter()

    @router.post("/orgs/{org_id}/diagnostics/crash")
    async def crash(
        organization_id: str = Depends(deps.get_organization_id),
        db: AsyncSession = Depends(deps.get_tenant_db),
    ):
        db.add(Journal(organization_id=organization_id, code="CRASH", name="Never persisted"))
        await db.flush()
        raise RuntimeError("handler failed after writing")

    @router.post("/orgs/{org_id}/diagnostics/duplicate")
    async def duplicate(
        organization_id: str = Depends(deps.get_organization_id),
        db: AsyncSession = Depends(deps.get_tenant_db),
    ):
        # Unflushed: the unique violation only surfaces at commit.
        db.add(Journal(organization_id=organization_id, code="BAN", name="Duplicate"))
        return {"status": "queued"}

    @router.post("/orgs/{org_id}/diagnostics/reject")
    async def reject(
        organization_id: str = Depends(deps.get_organization_id),
        db: AsyncSession = Depends(deps.get_tenant_db),
    ):
        db.add(Journal(organization_id=organization_id, code="REJ", name="Rolled back"))
        await db.flush()
        raise ConflictError("DIAGNOSTIC_CONFLICT", "Rejected after writing.")

    @router.get("/diagnostics/whoami")
    async def whoami(
        organization_id: str = Depends(deps.get_organization_id),
        principal: Principal = Depends(deps.require_principal),
    ):
        return {"organization_id": organization_id, "user_id": principal.user_id}

    app.include_router(router, prefix=API)


async def test_healthz_is_public(client):
    response = await client.get(f"{API}/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}
    assert response.headers["x-request-id"]


async def test_request_id_is_echoed(client):
    response = await client.get(f"{API}/healthz", headers={"X-Request-ID": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


async def test_missing_token(client, books):
    response = await client.get(books.url("/entries/x"))

    assert response.status_code == 401
    assert response.json()["title"] == "UNAUTHORIZED"
    assert response.headers["www-authenticate"] == "Bearer"


async def test_invalid_token(client, books):
    response = await client.get(books.url("/journals"), headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired access token"


async def test_other_organization_is_forbidden(client, books, make_headers):
    response = await client.get(books.url("/journals", books.other_organization_id), headers=make_headers(books.organization_id))

    assert response.status_code == 403
    assert response.json()["title"] == "FORBIDDEN_ORGANIZATION_ACCESS"


async def test_super_admin_can_cross_organizations(client, books, make_headers):
    response = await client.get(
        books.url("/journals"),
        headers=make_headers(books.other_organization_id, roles=(), super_admin=True),
    )

    assert response.status_code == 200
    assert [j["code"] for j in response.json()] == ["BAN", "OD"]


async def test_unknown_organization(client, make_headers):
    organization_id = str(uuid.uuid4())

    response = await client.get(
        f"{API}/orgs/{organization_id}/journals", headers=make_headers(organization_id)
    )

    assert response.status_code == 404
    assert response.json()["title"] == "ORGANIZATION_NOT_FOUND"


async def test_locked_organization(client, books, make_headers):
    response = await client.get(
        books.url("/journals", books.locked_organization_id), headers=make_headers(books.locked_organization_id)
    )

    assert response.status_code == 423
    assert response.json()["title"] == "ORGANIZATION_LOCKED"
    assert response.json()["detail"] == "Unpaid subscription"


async def test_invalid_organization_id(client, make_headers):
    response = await client.get(f"{API}/orgs/not-a-uuid/journals", headers=make_headers("not-a-uuid"))

    assert response.status_code == 400
    assert response.json()["title"] == "INVALID_ORGANIZATION_ID"


async def test_tenant_from_header(app, client, books, headers):
    add_diagnostic_routes(app)

    response = await client.get(
        f"{API}/diagnostics/whoami", headers={**headers, "X-Organization-Id": books.organization_id}
    )

    assert response.status_code == 200
    assert response.json() == {"organization_id": books.organization_id, "user_id": "user-1"}


async def test_exception_after_write_rolls_back(app, failing_client, books, headers, database):
    add_diagnostic_routes(app)

    response = await failing_client.post(books.url("/diagnostics/crash"), headers=headers)

    assert response.status_code == 500
    assert response.json()["detail"] == "An unexpected error occurred."
    assert await count_rows(database, Journal, code="CRASH") == 0


async def test_commit_failure_is_reported(app, client, books, headers, database):
    add_diagnostic_routes(app)

    response = await client.post(books.url("/diagnostics/duplicate"), headers=headers)

    assert response.status_code == 500
    assert response.json()["title"] == "TENANT_TRANSACTION_FAILED"
    assert await count_rows(database, Journal, organization_id=books.organization_id) == 2


async def test_error_response_rolls_back(app, client, books, headers, database):
    add_diagnostic_routes(app)

    response = await client.post(books.url("/diagnostics/reject"), headers=headers)

    assert response.status_code == 409
    assert response.json()["title"] == "DIAGNOSTIC_CONFLICT"
    assert await count_rows(database, Journal, code="REJ") == 0


def test_resolve_target_from_path():
    request = make_request("/api/v1/orgs/abc/entries", headers={"X-Organization-Id": "header-org"})

    assert resolve_target_organization(request) == "abc"


def test_resolve_target_from_headers():
    assert resolve_target_organization(make_request("/api/v1/healthz", headers={"X-Tenant-Id": " t-1 "})) == "t-1"
    assert resolve_target_organization(make_request("/api/v1/healthz", headers={"X-Org-Id": "t-2"})) == "t-2"


def test_resolve_target_from_principal():
    principal = Principal(user_id="u", organization_id="org-9")

    assert resolve_target_organization(make_request("/api/v1/me", principal=principal)) == "org-9"
    assert resolve_target_organization(make_request("/api/v1/healthz")) is None
