"""
Payment rankings, streaks and badges.

A paid transaction feeds two things: the payer's rolling streak, and (for
the first three distinct payers of a bill) a podium rank. Both are written in
the storage transaction that flips the transaction to paid.

Milestone badges are judged afterwards, from committed data, whenever a
transaction is created or paid.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing.core.config import settings
from billing.core.errors import ValidationError
from billing.db.session import run_in_transaction
from billing.models.badge import BadgeStats
from billing.models.events import BadgeEligible, Event, RankAchieved
from billing.models.ranking import RANKS, PaymentRanking, PaymentStreak
from billing.models.transaction import Transaction
from billing.repositories.badge_repo import (
    BEGINNER,
    BEST_FRIEND,
    DEBT_FREE,
    HEAVY_DEBT,
    RANK_BADGES,
    RICH,
    BadgeRepository,
)
from billing.repositories.ranking_repo import RankingRepository

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def advance_streak(
    streak: PaymentStreak,
    paid_at: datetime,
    rank: Optional[int] = None,
    window: timedelta = timedelta(hours=24),
) -> PaymentStreak:
    """
    Apply one payment to a streak and return the new state.

    A payment within `window` of the previous one extends the streak,
    anything later starts a new one at 1.
    """
    paid_at = _as_utc(paid_at)
    last = streak.last_payment_date

    if last is not None and paid_at - _as_utc(last) <= window:
        current = streak.current_streak + 1
    else:
        current = 1

    updated = streak.model_copy(update={
        "current_streak": current,
        "longest_streak": max(streak.longest_streak, current),
        "last_payment_date": paid_at,
    })
    if rank in RANKS:
        field = f"rank{rank}_count"
        setattr(updated, field, getattr(updated, field) + 1)
    return updated


def milestone_badges(stats: BadgeStats, now: datetime) -> List[str]:
    """Milestone badges the stats qualify for, whether or not the user holds them."""
    earned = []
    if stats.transaction_count > 0:
        earned.append(BEGINNER)
    if stats.total_transacted >= settings.BADGE_RICH_TOTAL:
        earned.append(RICH)
    if stats.partner_count >= settings.BADGE_BEST_FRIEND_PARTNERS:
        earned.append(BEST_FRIEND)
    # Judged after every new debt, so each peak of the running total is seen
    if stats.current_debt >= settings.BADGE_HEAVY_DEBT:
        earned.append(HEAVY_DEBT)
    since = stats.debt_free_since
    if since is not None and _as_utc(now) - _as_utc(since) >= timedelta(days=settings.BADGE_DEBT_FREE_DAYS):
        earned.append(DEBT_FREE)
    return earned


class StreakService:
    """Rank & streak tracker."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        rankings: Optional[RankingRepository] = None,
        badges: Optional[BadgeRepository] = None,
        window: Optional[timedelta] = None,
    ):
        self.db = db
        self.rankings = rankings or RankingRepository(db)
        self.badges = badges or BadgeRepository(db)
        self.window = window or timedelta(hours=settings.STREAK_WINDOW_HOURS)

    async def on_transaction_paid(self, tx: Transaction, session) -> Tuple[Optional[int], List[Event]]:
        """
        Rank the payer on the transaction's bill and advance their streak.

        Must run in the mark-paid storage transaction. Only a payer without
        a ranking on the bill claims an arrival slot; slots past the podium
        are counted but not recorded.
        """
        paid_at = tx.paid_at or datetime.now(timezone.utc)

        if tx.bill_id is not None and not await self.rankings.has_ranking(tx.bill_id, tx.payer_id, session=session):
            claim = await self.rankings.claim_next_rank(tx.bill_id, session=session)
            if claim is not None:
                rank, bill_created_at = claim
                if rank in RANKS:
                    duration = int((_as_utc(paid_at) - _as_utc(bill_created_at)).total_seconds())
                    events = await self.record_payment_ranking(
                        tx.bill_id, tx.payer_id, rank, paid_at, max(duration, 0), session=session
                    )
                    return rank, events

        await self._advance(tx.payer_id, paid_at, None, session)
        return None, []

    async def record_payment_ranking(
        self,
        bill_id: int,
        user_id: int,
        rank: int,
        paid_at: datetime,
        duration_seconds: int,
        session,
    ) -> List[Event]:
        """Upsert the (bill, rank) slot and update the user's streak."""
        if rank not in RANKS:
            raise ValidationError(f"Rank must be one of {RANKS}, got {rank}")

        await self.rankings.upsert_ranking(
            PaymentRanking(
                bill_id=bill_id,
                rank=rank,
                user_id=user_id,
                paid_at=paid_at,
                payment_duration=duration_seconds,
            ),
            session=session,
        )
        await self._advance(user_id, paid_at, rank, session)

        events: List[Event] = [RankAchieved(
            bill_id=bill_id, user_id=user_id, rank=rank, payment_duration=duration_seconds
        )]
        badge = RANK_BADGES[rank]
        if await self.badges.award(user_id, badge, session=session):
            events.append(BadgeEligible(user_id=user_id, badge=badge))
        logger.info("User %s took rank %s on bill %s", user_id, rank, bill_id)
        return events

    async def record_payment_ranking_standalone(
        self,
        bill_id: int,
        user_id: int,
        rank: int,
        paid_at: datetime,
        duration_seconds: int,
    ) -> List[Event]:
        """record_payment_ranking in a storage transaction of its own."""
        async def _record(session):
            return await self.record_payment_ranking(
                bill_id, user_id, rank, paid_at, duration_seconds, session=session
            )

        return await run_in_transaction(self.db, _record)

    async def _advance(self, user_id: int, paid_at: datetime, rank: Optional[int], session) -> PaymentStreak:
        current = await self.rankings.get_streak(user_id, session=session)
        updated = advance_streak(current, paid_at, rank, self.window)
        await self.rankings.save_streak(updated, session=session)
        return updated

    async def check_badge_eligibility(self, user_id: int, now: Optional[datetime] = None) -> List[Event]:
        """
        Award the milestone badges a user now qualifies for.

        Call after the triggering write commits. Only badges new to the user
        produce a BadgeEligible event.
        """
        stats = await self.badges.get_stats(user_id)
        events: List[Event] = []
        for badge in milestone_badges(stats, now or datetime.now(timezone.utc)):
            if await self.badges.award(user_id, badge):
                logger.info("User %s earned badge %s", user_id, badge)
                events.append(BadgeEligible(user_id=user_id, badge=badge))
        return events

    async def get_streak(self, user_id: int) -> PaymentStreak:
        return await self.rankings.get_streak(user_id)

    async def list_badges(self, user_id: int) -> List[str]:
        return await self.badges.list_badges(user_id)
