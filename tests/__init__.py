"""
ArFS SDK Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (DAO and facade against the in-memory ledger)
"""
