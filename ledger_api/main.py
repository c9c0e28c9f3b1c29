import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware import Middleware

from ledger_api.api.router import api_router
from ledger_api.core.config import Settings, get_settings
from ledger_api.core.db import Database
from ledger_api.core.errors import register_exception_handlers
from ledger_api.core.idempotency import IdempotencyStore, build_idempotency_store
from ledger_api.core.logging_config import configure_logging
from ledger_api.middleware.idempotency import IdempotencyMiddleware
from ledger_api.middleware.security import AuthenticationMiddleware, RequestLoggingMiddleware
from ledger_api.middleware.tenant_transaction import TenantTransactionMiddleware

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    idempotency_store: Optional[IdempotencyStore] = None,
) -> FastAPI:
    """
    Build the application.

    Run with ``uvicorn ledger_api.main:create_app --factory``. Tests pass
    their own database and idempotency store.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    database = database or Database(settings)
    idempotency_store = idempotency_store or build_idempotency_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[LIFESPAN] Starting application")
        if settings.db_create_tables:
            logger.info("[LIFESPAN] Creating database tables")
            await database.create_all()
        yield
        logger.info("[LIFESPAN] Shutting down...")
        close = getattr(idempotency_store, "close", None)
        if close is not None:
            await close()
        await database.dispose()
        logger.info("[LIFESPAN] Shutdown complete")

    # Outermost first. Fixed for the lifetime of the app.
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.backend_cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=[
                "Content-Type",
                "Authorization",
                "Accept",
                "Origin",
                settings.idempotency_header,
                "X-Organization-Id",
                "X-Request-ID",
            ],
            expose_headers=["X-Request-ID", settings.idempotency_header, "Idempotency-Replayed", "X-Checksum"],
        ),
        Middleware(RequestLoggingMiddleware),
        Middleware(AuthenticationMiddleware, settings=settings),
        Middleware(
            IdempotencyMiddleware,
            store=idempotency_store,
            header_name=settings.idempotency_header,
            ttl_seconds=settings.idempotency_ttl_seconds,
        ),
        Middleware(TenantTransactionMiddleware, database=database, settings=settings),
    ]

    app = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
        middleware=middleware,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.idempotency_store = idempotency_store

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    logger.info(f"[CORS] Configured origins: {settings.backend_cors_origins}")
    return app
