"""Core application primitives (settings, database, tenant transactions, idempotency)."""
