from functools import lru_cache
import os
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    project_name: str = "Ledger API"
    environment: str = "development"
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw or os.environ.get("BACKEND_CORS_ORIGINS") or ""
        if not raw.strip():
            return []
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    database_url: str  # Required - no default, must be set in .env
    db_pool_size: int = 10
    db_max_overflow: int = 10
    db_pool_timeout: int = 10  # Seconds to wait for a pooled connection
    db_create_tables: bool = False  # Create tables at startup (development only; use Alembic otherwise)

    # Transaction-local PostgreSQL timeouts applied with the tenant context.
    # 0 keeps the server default.
    db_statement_timeout_ms: int = 15_000
    db_lock_timeout_ms: int = 5_000
    db_idle_in_transaction_timeout_ms: int = 30_000

    # Access tokens are issued elsewhere; this service only verifies them.
    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    idempotency_header: str = "Idempotency-Key"
    idempotency_ttl_seconds: int = 60 * 60 * 24
    idempotency_backend: str = "memory"  # memory or redis
    idempotency_cleanup_window_seconds: int = 60
    idempotency_key_prefix: str = "idempotency:"
    redis_url: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
