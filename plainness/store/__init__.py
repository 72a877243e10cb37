"""Persistence: key-value backends, gateway, debounced writes, version ledger."""
