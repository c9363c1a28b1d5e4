"""
Time-boxed storage for OCR bill data awaiting web allocation.

Entries expire through a TTL index on created_at, so abandoned sessions
need no manual cleanup.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing.db.session import storage_errors


class BillSessionRepository:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["bill_sessions"]

    @storage_errors
    async def create(self, payee_platform_id: str, bill: dict) -> str:
        session_id = uuid.uuid4().hex
        await self.collection.insert_one({
            "_id": session_id,
            "payee_platform_id": payee_platform_id,
            "bill": bill,
            "created_at": datetime.now(timezone.utc),
        })
        return session_id

    @storage_errors
    async def get(self, session_id: str) -> Optional[dict]:
        return await self.collection.find_one({"_id": session_id})

    @storage_errors
    async def consume(self, session_id: str) -> Optional[dict]:
        """Remove and return a session so a bill is allocated at most once."""
        return await self.collection.find_one_and_delete({"_id": session_id})

    @storage_errors
    async def restore(self, stored: dict) -> None:
        """Put back a consumed session whose allocation was rejected, keeping its expiry."""
        await self.collection.replace_one({"_id": stored["_id"]}, stored, upsert=True)
