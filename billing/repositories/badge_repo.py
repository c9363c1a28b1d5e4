from datetime import datetime, timezone
from typing import List

from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from billing.db.session import storage_errors
from billing.models.badge import BadgeStats
from billing.repositories.ledger_repo import SETTLED_EPSILON

# Badges awarded the first time a user takes each payment rank
RANK_BADGES = {
    1: "fastest_payer",
    2: "second_fastest_payer",
    3: "third_fastest_payer",
}

# Milestone badges, judged on BadgeStats
BEGINNER = "beginner"
RICH = "rich"
BEST_FRIEND = "best_friend"
HEAVY_DEBT = "heavy_debt"
DEBT_FREE = "debt_free"


class BadgeRepository:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["user_badges"]

    @storage_errors
    async def award(self, user_id: int, badge: str, session=None) -> bool:
        """Grant a badge. Returns True only if the user did not have it yet."""
        # Upsert instead of insert: a duplicate key would abort the
        # surrounding storage transaction.
        result = await self.collection.update_one(
            {"user_id": user_id, "badge": badge},
            {"$setOnInsert": {"unlocked_at": datetime.now(timezone.utc)}},
            upsert=True,
            session=session,
        )
        return result.upserted_id is not None

    @storage_errors
    async def list_badges(self, user_id: int) -> List[str]:
        docs = await self.collection.find({"user_id": user_id}).sort("unlocked_at", -1).to_list(None)
        return [doc["badge"] for doc in docs]

    @storage_errors
    async def get_stats(self, user_id: int) -> BadgeStats:
        transactions = self.db["transactions"]

        totals = await transactions.aggregate([
            {"$match": {"$or": [{"payer_id": user_id}, {"payee_id": user_id}]}},
            {"$group": {
                "_id": None,
                "count": {"$sum": 1},
                "total": {"$sum": "$amount"},
                "partners": {"$addToSet": {
                    "$cond": [{"$eq": ["$payer_id", user_id]}, "$payee_id", "$payer_id"]
                }},
            }},
        ]).to_list(1)

        owed = await self.db["user_debts"].aggregate([
            {"$match": {"debtor_id": user_id, "amount": {"$gt": Decimal128(SETTLED_EPSILON)}}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]).to_list(1)

        last_paid = await transactions.find_one(
            {"payer_id": user_id, "paid": True},
            sort=[("paid_at", DESCENDING)],
        )
        user = await self.db["users"].find_one({"_id": user_id})

        return BadgeStats(
            transaction_count=totals[0]["count"] if totals else 0,
            total_transacted=totals[0]["total"] if totals else None,
            partner_count=len(totals[0]["partners"]) if totals else 0,
            current_debt=owed[0]["total"] if owed else None,
            last_debt_paid_at=last_paid["paid_at"] if last_paid else None,
            member_since=user.get("created_at") if user else None,
        )
