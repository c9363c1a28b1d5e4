import logging
from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from billing.core.errors import NotFoundError, ValidationError
from billing.db.mongo import next_sequence
from billing.db.session import storage_errors
from billing.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """User database operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    @storage_errors
    async def get_or_create(self, platform_id: str) -> User:
        """Return the user for a platform id, creating it on first reference."""
        platform_id = (platform_id or "").strip()
        if not platform_id:
            raise ValidationError("Platform id must not be empty")

        doc = await self.collection.find_one({"platform_id": platform_id})
        if doc:
            return User(**doc)

        user_dict = {
            "_id": await next_sequence(self.db, "users"),
            "platform_id": platform_id,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self.collection.insert_one(user_dict)
        except DuplicateKeyError:
            # Lost a race with a concurrent first reference
            doc = await self.collection.find_one({"platform_id": platform_id})
            if doc is None:
                raise
            return User(**doc)

        logger.info("Created user %s for platform id %s", user_dict["_id"], platform_id)
        return User(**user_dict)

    @storage_errors
    async def get_by_platform_id(self, platform_id: str) -> Optional[User]:
        doc = await self.collection.find_one({"platform_id": platform_id})
        if doc:
            return User(**doc)
        return None

    @storage_errors
    async def get_by_id(self, user_id: int) -> Optional[User]:
        doc = await self.collection.find_one({"_id": user_id})
        if doc:
            return User(**doc)
        return None

    async def get_platform_id(self, user_id: int) -> str:
        user = await self.get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user.platform_id

    @storage_errors
    async def set_prompt_pay_id(self, platform_id: str, prompt_pay_id: str) -> User:
        """Save the user's PromptPay id, creating the user if needed. The caller validates it."""
        user = await self.get_or_create(platform_id)
        await self.collection.update_one(
            {"_id": user.id},
            {"$set": {"prompt_pay_id": prompt_pay_id, "updated_at": datetime.now(timezone.utc)}},
        )
        logger.info("Saved PromptPay id for user %s", user.id)
        return user.model_copy(update={"prompt_pay_id": prompt_pay_id})
