"""
RankingRepository - payment rankings and streaks.

Every write here is meant to run inside the same storage transaction as the
payment that triggered it; callers pass the session.
"""

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from billing.db.session import storage_errors
from billing.models.ranking import PaymentRanking, PaymentStreak


class RankingRepository:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.rankings = db["bill_payment_ranking"]
        self.streaks = db["payment_streak"]
        self.bills = db["bills"]

    @storage_errors
    async def has_ranking(self, bill_id: int, user_id: int, session=None) -> bool:
        doc = await self.rankings.find_one({"bill_id": bill_id, "user_id": user_id}, session=session)
        return doc is not None

    @storage_errors
    async def claim_next_rank(self, bill_id: int, session=None) -> Optional[Tuple[int, datetime]]:
        """
        Take the next arrival slot on a bill.

        Incrementing the bill document serializes concurrent payers: a second
        transaction touching the same bill hits a write conflict and is
        retried after the first commits. Returns (rank, bill_created_at), or
        None if the bill does not exist.
        """
        doc = await self.bills.find_one_and_update(
            {"_id": bill_id},
            {"$inc": {"ranks_assigned": 1}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            return None
        return doc["ranks_assigned"], doc["created_at"]

    @storage_errors
    async def upsert_ranking(self, ranking: PaymentRanking, session=None) -> None:
        """Record a ranking; the (bill_id, rank) slot goes to the last writer."""
        await self.rankings.update_one(
            {"bill_id": ranking.bill_id, "rank": ranking.rank},
            {
                "$set": {
                    "user_id": ranking.user_id,
                    "paid_at": ranking.paid_at,
                    "payment_duration": ranking.payment_duration,
                },
                "$setOnInsert": {
                    "received_praise": False,
                    "created_at": ranking.created_at,
                },
            },
            upsert=True,
            session=session,
        )

    @storage_errors
    async def get_streak(self, user_id: int, session=None) -> PaymentStreak:
        """Return the user's streak, zeroed if they have never paid."""
        doc = await self.streaks.find_one({"_id": user_id}, session=session)
        if doc is None:
            return PaymentStreak(_id=user_id)
        return PaymentStreak(**doc)

    @storage_errors
    async def save_streak(self, streak: PaymentStreak, session=None) -> None:
        """
        Replace the user's streak document.

        Pair with get_streak inside one transaction: a concurrent save of the
        same document conflicts and the driver retries the whole callback.
        """
        streak.updated_at = datetime.now(timezone.utc)
        await self.streaks.replace_one(
            {"_id": streak.user_id},
            streak.model_dump(by_alias=True),
            upsert=True,
            session=session,
        )

    @storage_errors
    async def get_ranking(self, bill_id: int, rank: int, session=None) -> Optional[PaymentRanking]:
        doc = await self.rankings.find_one({"bill_id": bill_id, "rank": rank}, session=session)
        if doc:
            return PaymentRanking(**doc)
        return None

    @storage_errors
    async def list_rankings(self, bill_id: int) -> List[PaymentRanking]:
        docs = await self.rankings.find({"bill_id": bill_id}).sort("rank", ASCENDING).to_list(None)
        return [PaymentRanking(**doc) for doc in docs]

    @storage_errors
    async def mark_praise_given(self, bill_id: int, rank: int = 1) -> bool:
        """Returns True only for the call that flips the flag."""
        result = await self.rankings.update_one(
            {"bill_id": bill_id, "rank": rank, "received_praise": False},
            {"$set": {"received_praise": True}},
        )
        return result.modified_count > 0
