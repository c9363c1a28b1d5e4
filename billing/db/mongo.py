import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from billing.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    await db["users"].create_index("platform_id", unique=True)

    # Transaction lookups by pair and paid flag
    await db["transactions"].create_index(
        [("payer_id", ASCENDING), ("payee_id", ASCENDING), ("paid", ASCENDING)]
    )
    await db["transactions"].create_index([("payee_id", ASCENDING), ("paid", ASCENDING)])
    await db["transactions"].create_index("bill_id")

    # One aggregate row per ordered pair; upserts rely on it
    await db["user_debts"].create_index(
        [("debtor_id", ASCENDING), ("creditor_id", ASCENDING)], unique=True
    )
    await db["user_debts"].create_index([("creditor_id", ASCENDING), ("amount", DESCENDING)])

    await db["bill_payment_ranking"].create_index(
        [("bill_id", ASCENDING), ("rank", ASCENDING)], unique=True
    )
    await db["bill_payment_ranking"].create_index([("bill_id", ASCENDING), ("user_id", ASCENDING)])

    await db["user_badges"].create_index(
        [("user_id", ASCENDING), ("badge", ASCENDING)], unique=True
    )

    await db["bill_sessions"].create_index(
        "created_at", expireAfterSeconds=settings.BILL_SESSION_TTL_SECONDS
    )

async def next_sequence(db: AsyncIOMotorDatabase, name: str, session=None) -> int:
    """Allocate the next integer id for a collection."""
    doc = await db["counters"].find_one_and_update(
        {"_id": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    return doc["value"]
