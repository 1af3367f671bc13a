"""
Datastore SDK Test Suite.

This package contains:
- unit/: Unit tests (mocked dispatcher, mock HTTP transport)
- integration/: Dataset and Transaction against an in-memory fake Datastore
"""
