from fastapi import APIRouter

from ledger_api.routers import banking, entries, fiscal_years, health, reference_data

ORG_PREFIX = "/orgs/{org_id}"

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(fiscal_years.router, prefix=f"{ORG_PREFIX}/fiscal-years", tags=["fiscal-years"])
api_router.include_router(reference_data.router, prefix=ORG_PREFIX, tags=["reference-data"])
api_router.include_router(entries.router, prefix=f"{ORG_PREFIX}/entries", tags=["entries"])
api_router.include_router(banking.router, prefix=ORG_PREFIX, tags=["banking"])
