"""Ledger services. Each takes the request session and never commits it."""
