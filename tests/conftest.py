import os
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from billing.db.mongo import create_indexes
from main import app

# Repository tests need a replica set (multi-document transactions)
TEST_MONGODB_URI = os.getenv("MONGODB_URI")
TEST_MONGODB_DB = "billing_test"


@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """Fixture for a clean test MongoDB database with production indexes."""
    if not TEST_MONGODB_URI:
        pytest.skip("MONGODB_URI not set")

    client = AsyncIOMotorClient(TEST_MONGODB_URI, tz_aware=True)
    await client.drop_database(TEST_MONGODB_DB)
    db = client[TEST_MONGODB_DB]
    await create_indexes(db)

    yield db

    await client.drop_database(TEST_MONGODB_DB)
    client.close()


@pytest.fixture
def mock_db():
    """MagicMock database whose collections have async methods."""
    db = MagicMock()
    for name in ("users", "transactions", "user_debts", "bills", "counters",
                 "bill_payment_ranking", "payment_streak", "user_badges", "bill_sessions"):
        collection = MagicMock()
        collection.find_one = AsyncMock(return_value=None)
        collection.insert_one = AsyncMock()
        collection.update_one = AsyncMock()
        collection.find_one_and_update = AsyncMock(return_value=None)
        setattr(db, name, collection)
    db.__getitem__.side_effect = lambda name: getattr(db, name)
    return db


@pytest.fixture
def client():
    """TestClient without startup hooks; tests override service dependencies."""
    app.dependency_overrides.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
