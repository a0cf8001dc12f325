"""
E2E test fixtures for entodm.

These tests require a running MongoDB server (4.0+). Point ENTODM_URL at
it, e.g. mongodb://localhost:27017/entodm_e2e.
"""

import os
import uuid

import pytest
import pytest_asyncio

from entodm import connection
from entodm.config import OdmSettings

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("ENTODM_E2E_TESTS", "0") == "1"


def pytest_collection_modifyitems(config, items):
    """Skip every e2e test unless E2E mode is enabled."""
    if E2E_ENABLED:
        return
    skip = pytest.mark.skip(reason="E2E tests disabled. Set ENTODM_E2E_TESTS=1 to enable.")
    for item in items:
        if item.get_closest_marker("e2e") is not None:
            item.add_marker(skip)


@pytest_asyncio.fixture
async def mongo_store():
    """Active MongoDB store on a throwaway database, dropped afterwards."""
    settings = OdmSettings(database=f"entodm_e2e_{uuid.uuid4().hex[:8]}")
    store = await connection.init(settings=settings)
    try:
        yield store
    finally:
        await store.database.client.drop_database(store.database.name)
        await connection.close()
