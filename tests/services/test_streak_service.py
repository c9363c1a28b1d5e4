from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from billing.core.errors import ValidationError
from billing.models.events import BadgeEligible, RankAchieved
from billing.models.ranking import PaymentStreak
from billing.models.transaction import Transaction
from billing.models.badge import BadgeStats
from billing.services.streak_service import StreakService, advance_streak, milestone_badges

T = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestAdvanceStreak:

    def test_first_payment_starts_streak(self):
        streak = advance_streak(PaymentStreak(_id=1), T)
        assert streak.current_streak == 1
        assert streak.longest_streak == 1
        assert streak.last_payment_date == T

    def test_payment_within_window_continues(self):
        streak = advance_streak(PaymentStreak(_id=1), T)
        streak = advance_streak(streak, T + timedelta(hours=20))
        assert streak.current_streak == 2
        assert streak.longest_streak == 2

    def test_payment_after_window_resets(self):
        streak = advance_streak(PaymentStreak(_id=1), T)
        streak = advance_streak(streak, T + timedelta(hours=20))
        streak = advance_streak(streak, T + timedelta(hours=70))
        assert streak.current_streak == 1
        assert streak.longest_streak == 2

    def test_gap_of_fifty_hours_resets(self):
        streak = advance_streak(PaymentStreak(_id=1, current_streak=5, longest_streak=5, last_payment_date=T),
                                T + timedelta(hours=50))
        assert streak.current_streak == 1
        assert streak.longest_streak == 5

    def test_exactly_on_window_edge_continues(self):
        streak = advance_streak(PaymentStreak(_id=1), T)
        streak = advance_streak(streak, T + timedelta(hours=24))
        assert streak.current_streak == 2

    def test_rank_counter(self):
        streak = advance_streak(PaymentStreak(_id=1), T, rank=2)
        assert (streak.rank1_count, streak.rank2_count, streak.rank3_count) == (0, 1, 0)

    def test_naive_datetimes_are_utc(self):
        streak = advance_streak(PaymentStreak(_id=1, last_payment_date=T.replace(tzinfo=None), current_streak=3),
                                T + timedelta(hours=1))
        assert streak.current_streak == 4

    def test_input_is_not_mutated(self):
        original = PaymentStreak(_id=1)
        advance_streak(original, T, rank=1)
        assert original.current_streak == 0
        assert original.rank1_count == 0


@pytest.fixture
def tracker():
    rankings = MagicMock()
    rankings.has_ranking = AsyncMock(return_value=False)
    rankings.claim_next_rank = AsyncMock(return_value=(1, T - timedelta(minutes=5)))
    rankings.upsert_ranking = AsyncMock()
    rankings.get_streak = AsyncMock(side_effect=lambda user_id, session=None: PaymentStreak(_id=user_id))
    rankings.save_streak = AsyncMock()
    badges = MagicMock()
    badges.award = AsyncMock(return_value=True)
    return StreakService(MagicMock(), rankings=rankings, badges=badges)


def paid_tx(bill_id=10):
    return Transaction(_id=5, payer_id=2, payee_id=1, amount=Decimal("50"),
                       paid=True, paid_at=T, bill_id=bill_id)


@pytest.mark.asyncio
class TestStreakService:

    async def test_first_payer_takes_rank_one(self, tracker):
        session = MagicMock()

        rank, events = await tracker.on_transaction_paid(paid_tx(), session=session)

        assert rank == 1
        assert isinstance(events[0], RankAchieved)
        assert events[0].payment_duration == 300
        assert events[1] == BadgeEligible(user_id=2, badge="fastest_payer", occurred_at=events[1].occurred_at)
        ranking = tracker.rankings.upsert_ranking.call_args.args[0]
        assert (ranking.bill_id, ranking.rank, ranking.user_id) == (10, 1, 2)
        saved = tracker.rankings.save_streak.call_args.args[0]
        assert saved.rank1_count == 1
        assert saved.current_streak == 1
        assert tracker.rankings.save_streak.call_args.kwargs["session"] is session

    async def test_badge_only_announced_when_new(self, tracker):
        tracker.badges.award.return_value = False

        _, events = await tracker.on_transaction_paid(paid_tx(), session=MagicMock())

        assert [type(e) for e in events] == [RankAchieved]

    async def test_fourth_payer_gets_no_rank_but_streak_advances(self, tracker):
        tracker.rankings.claim_next_rank.return_value = (4, T)

        rank, events = await tracker.on_transaction_paid(paid_tx(), session=MagicMock())

        assert rank is None
        assert events == []
        tracker.rankings.upsert_ranking.assert_not_called()
        tracker.rankings.save_streak.assert_awaited_once()

    async def test_payer_already_ranked_on_bill(self, tracker):
        tracker.rankings.has_ranking.return_value = True

        rank, _ = await tracker.on_transaction_paid(paid_tx(), session=MagicMock())

        assert rank is None
        tracker.rankings.claim_next_rank.assert_not_called()
        tracker.rankings.save_streak.assert_awaited_once()

    async def test_rejects_rank_outside_podium(self, tracker):
        with pytest.raises(ValidationError):
            await tracker.record_payment_ranking(10, 2, 4, T, 0, session=MagicMock())


class TestMilestoneBadges:

    def test_new_user_earns_nothing(self):
        assert milestone_badges(BadgeStats(member_since=T), T) == []

    def test_thresholds(self):
        stats = BadgeStats(
            transaction_count=60,
            total_transacted=Decimal("10000"),
            partner_count=50,
            current_debt=Decimal("50000"),
            member_since=T - timedelta(days=90),
        )
        assert milestone_badges(stats, T) == ["beginner", "rich", "best_friend", "heavy_debt"]

    def test_just_below_thresholds(self):
        stats = BadgeStats(
            transaction_count=1,
            total_transacted=Decimal("9999.99"),
            partner_count=49,
            current_debt=Decimal("49999.99"),
        )
        assert milestone_badges(stats, T) == ["beginner"]

    def test_debt_free_counts_from_last_payment(self):
        stats = BadgeStats(
            transaction_count=3,
            member_since=T - timedelta(days=100),
            last_debt_paid_at=T - timedelta(days=29),
        )
        assert "debt_free" not in milestone_badges(stats, T)
        assert "debt_free" in milestone_badges(stats, T + timedelta(days=1))

    def test_owing_anything_is_not_debt_free(self):
        stats = BadgeStats(current_debt=Decimal("0.50"), member_since=T - timedelta(days=365))
        assert "debt_free" not in milestone_badges(stats, T)


@pytest.mark.asyncio
async def test_check_badge_eligibility_announces_new_badges_only(tracker):
    tracker.badges.get_stats = AsyncMock(return_value=BadgeStats(
        transaction_count=2, total_transacted=Decimal("12000"), current_debt=Decimal("100"),
    ))
    tracker.badges.award = AsyncMock(side_effect=lambda user_id, badge: badge == "rich")

    events = await tracker.check_badge_eligibility(2, now=T)

    assert [(e.user_id, e.badge) for e in events] == [(2, "rich")]
    assert [c.args[1] for c in tracker.badges.award.await_args_list] == ["beginner", "rich"]
