"""Multi-tenant ledger API: tenant transactions, idempotent writes, double-entry core."""
