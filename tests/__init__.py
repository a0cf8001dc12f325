"""
entodm Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (entities against the in-memory store)
- e2e/: End-to-end tests (live MongoDB server)
"""
