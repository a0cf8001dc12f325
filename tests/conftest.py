"""
Shared fixtures for entodm tests.

The store fixture installs a fresh InMemoryDocumentStore as the active
store for one test and closes it afterwards.
"""

import pytest_asyncio

from entodm import connection
from entodm.store.memory import InMemoryDocumentStore


@pytest_asyncio.fixture
async def store():
    """Active in-memory store, cleared after the test."""
    memory = InMemoryDocumentStore()
    await connection.init(store=memory)
    try:
        yield memory
    finally:
        await connection.close()
