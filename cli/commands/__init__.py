"""Ledger CLI command groups."""
