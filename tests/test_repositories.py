"""Ledger integration tests; need MONGODB_URI pointing at a replica set."""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from billing.core.errors import AlreadyPaidOrNotFound, AmbiguousError, ValidationError
from billing.models.bill import ApportionMode, LineItem
from billing.repositories.badge_repo import BadgeRepository
from billing.repositories.bill_session_repo import BillSessionRepository
from billing.repositories.user_repo import UserRepository
from billing.services.bill_service import BillService
from billing.services.ledger_service import LedgerService
from billing.services.payee_resolver import PayeeResolver
from billing.services.payment_service import PaymentService


async def assert_invariant(ledger: LedgerService, debtor_id: int, creditor_id: int):
    debt = await ledger.ledger.get_aggregate_debt(debtor_id, creditor_id)
    expected = await ledger.ledger.sum_unpaid(debtor_id, creditor_id)
    assert debt is not None
    assert debt.amount == expected


@pytest.fixture
def ledger(test_db):
    return LedgerService(test_db)


@pytest.mark.asyncio
class TestUserRepository:

    async def test_get_or_create_is_idempotent(self, test_db):
        repo = UserRepository(test_db)

        first = await repo.get_or_create("111")
        second = await repo.get_or_create("111")

        assert first.id == second.id
        assert await repo.get_platform_id(first.id) == "111"

    async def test_concurrent_first_reference(self, test_db):
        repo = UserRepository(test_db)

        users = await asyncio.gather(*[repo.get_or_create("222") for _ in range(5)])

        assert len({u.id for u in users}) == 1

    async def test_empty_platform_id(self, test_db):
        with pytest.raises(ValidationError):
            await UserRepository(test_db).get_or_create("  ")


@pytest.mark.asyncio
class TestLedger:

    async def test_pay_one_of_two(self, ledger):
        """The 150.00 scenario: two debts, one paid, 50.00 left."""
        tx1 = await ledger.create_transaction_for_platform("bob", "alice", Decimal("100"), "dinner")
        tx2 = await ledger.create_transaction_for_platform("bob", "alice", Decimal("50"), "taxi")
        debtor, creditor = tx1.payer_id, tx1.payee_id

        debt = await ledger.ledger.get_aggregate_debt(debtor, creditor)
        assert debt.amount == Decimal("150.00")

        await ledger.mark_transaction_paid(tx1.id)

        debt = await ledger.ledger.get_aggregate_debt(debtor, creditor)
        assert debt.amount == Decimal("50.00")
        unpaid = await ledger.ledger.list_unpaid_between(debtor, creditor)
        assert [tx.id for tx in unpaid] == [tx2.id]
        await assert_invariant(ledger, debtor, creditor)

    async def test_mark_paid_twice(self, ledger):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("30"))

        await ledger.mark_transaction_paid(tx.id)
        with pytest.raises(AlreadyPaidOrNotFound):
            await ledger.mark_transaction_paid(tx.id)

        debt = await ledger.ledger.get_aggregate_debt(tx.payer_id, tx.payee_id)
        assert debt.amount == Decimal("0.00")

    async def test_mark_unknown_transaction(self, ledger):
        with pytest.raises(AlreadyPaidOrNotFound):
            await ledger.mark_transaction_paid(987654)

    async def test_concurrent_marks_have_one_winner(self, ledger):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("75"))

        results = await asyncio.gather(
            *[ledger.mark_transaction_paid(tx.id) for _ in range(8)],
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(e, AlreadyPaidOrNotFound) for e in losers)
        await assert_invariant(ledger, tx.payer_id, tx.payee_id)

    async def test_concurrent_creates_keep_invariant(self, ledger):
        users = UserRepository(ledger.db)
        bob = await users.get_or_create("bob")
        alice = await users.get_or_create("alice")

        # first write creates the pair row
        await ledger.create_transaction(bob.id, alice.id, Decimal("10.10"))
        await asyncio.gather(*[
            ledger.create_transaction(bob.id, alice.id, Decimal("10.10")) for _ in range(9)
        ])

        debt = await ledger.ledger.get_aggregate_debt(bob.id, alice.id)
        assert debt.amount == Decimal("101.00")
        await assert_invariant(ledger, bob.id, alice.id)

    async def test_reduce_clamps_at_zero(self, ledger):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("40"))

        assert await ledger.reduce_debt_from_payment(tx.payer_id, tx.payee_id, Decimal("100")) is True
        debt = await ledger.ledger.get_aggregate_debt(tx.payer_id, tx.payee_id)
        assert debt.amount == Decimal("0.00")

        # nothing left to reduce; the transaction itself is still unpaid
        assert await ledger.reduce_debt_from_payment(tx.payer_id, tx.payee_id, Decimal("5")) is False
        assert (await ledger.get_transaction(tx.id)).paid is False

    async def test_user_balance(self, ledger):
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("40"))
        tx = await ledger.create_transaction_for_platform("alice", "carol", Decimal("15"))

        balance = await ledger.get_user_balance(tx.payer_id)

        assert balance.owes == Decimal("15.00")
        assert balance.is_owed == Decimal("40.00")
        assert balance.net == Decimal("25.00")


@pytest.mark.asyncio
class TestPayeeResolution:

    async def test_deterministic_unique_match(self, ledger):
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("150"))
        await ledger.create_transaction_for_platform("bob", "carol", Decimal("80"))
        resolver = PayeeResolver(ledger.ledger, ledger.users)

        first = await resolver.resolve_payee_platform_id("bob", Decimal("150"))
        second = await resolver.resolve_payee_platform_id("bob", Decimal("150"))

        assert first == second == "alice"

    async def test_ambiguous_between_two_creditors(self, ledger):
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("60"))
        await ledger.create_transaction_for_platform("bob", "carol", Decimal("60"))
        resolver = PayeeResolver(ledger.ledger, ledger.users)

        with pytest.raises(AmbiguousError):
            await resolver.resolve_payee_platform_id("bob", Decimal("60"))

    async def test_unreferenced_payment_reduces_the_right_pair(self, ledger):
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("100"))
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("50"))

        report = await PaymentService(ledger).apply_payment("bob", Decimal("150"))

        assert report.creditor_platform_id == "alice"
        assert report.reduced is True


@pytest.mark.asyncio
class TestRanking:

    async def test_first_three_payers_are_ranked(self, ledger, test_db):
        result = await BillService(ledger).apportion_bill(
            "payee",
            [LineItem(description="pizza", amount=Decimal("400"), participants=["a", "b", "c", "d"])],
            mode=ApportionMode.COLLAPSED,
            description="pizza",
        )
        start = datetime.now(timezone.utc)

        ranks = []
        for offset, payer in enumerate(["c", "a", "d", "b"]):
            [tx_id] = result.transaction_ids[payer]
            outcome = await ledger.mark_transaction_paid(tx_id, start + timedelta(minutes=offset))
            ranks.append(outcome.rank)

        assert ranks == [1, 2, 3, None]
        rankings = await ledger.streaks.rankings.list_rankings(result.bill_id)
        assert [r.rank for r in rankings] == [1, 2, 3]
        c = await ledger.users.get_by_platform_id("c")
        assert set(await BadgeRepository(test_db).list_badges(c.id)) == {"fastest_payer", "beginner"}
        streak = await ledger.streaks.get_streak(c.id)
        assert (streak.current_streak, streak.rank1_count) == (1, 1)

    async def test_concurrent_payers_get_distinct_ranks(self, ledger):
        result = await BillService(ledger).apportion_bill(
            "payee",
            [LineItem(description="cake", amount=Decimal("90"), participants=["a", "b", "c"])],
            mode=ApportionMode.COLLAPSED,
        )

        outcomes = await asyncio.gather(*[
            ledger.mark_transaction_paid(ids[0]) for ids in result.transaction_ids.values()
        ])

        assert sorted(o.rank for o in outcomes) == [1, 2, 3]

    async def test_same_payer_ranked_once_per_bill(self, ledger):
        result = await BillService(ledger).apportion_bill(
            "payee",
            [
                LineItem(description="soup", amount=Decimal("20"), participants=["a", "b"]),
                LineItem(description="rice", amount=Decimal("10"), participants=["a", "b"]),
            ],
            mode=ApportionMode.PER_ITEM,
        )

        ranks = [(await ledger.mark_transaction_paid(tx_id)).rank for tx_id in result.transaction_ids["a"]]
        ranks.append((await ledger.mark_transaction_paid(result.transaction_ids["b"][0])).rank)

        assert ranks == [1, None, 2]

    async def test_praise_once(self, ledger):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))
        await ledger.mark_transaction_paid(tx.id)
        sent = []

        async def send(user_id):
            sent.append(user_id)

        assert await ledger.notifier.praise_once(tx.bill_id, send) is True
        assert await ledger.notifier.praise_once(tx.bill_id, send) is False
        assert sent == [tx.payer_id]


@pytest.mark.asyncio
async def test_bill_session_consumed_once(test_db):
    sessions = BillSessionRepository(test_db)
    session_id = await sessions.create("alice", {"items": []})

    assert (await sessions.get(session_id))["payee_platform_id"] == "alice"
    assert await sessions.consume(session_id) is not None
    assert await sessions.consume(session_id) is None


@pytest.mark.asyncio
async def test_bill_session_restored_after_rejection(test_db):
    sessions = BillSessionRepository(test_db)
    session_id = await sessions.create("alice", {"items": []})

    stored = await sessions.consume(session_id)
    await sessions.restore(stored)

    again = await sessions.consume(session_id)
    assert again["created_at"] == stored["created_at"]


@pytest.mark.asyncio
class TestMilestoneBadges:

    async def test_first_transaction_earns_beginner_for_both_sides(self, ledger, test_db):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))

        badges = BadgeRepository(test_db)
        assert await badges.list_badges(tx.payer_id) == ["beginner"]
        assert await badges.list_badges(tx.payee_id) == ["beginner"]

    async def test_heavy_debt_and_rich(self, ledger, test_db):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("50000"))

        held = set(await BadgeRepository(test_db).list_badges(tx.payer_id))
        assert {"beginner", "rich", "heavy_debt"} <= held
        # paying it off does not take the badge away
        await ledger.mark_transaction_paid(tx.id)
        assert "heavy_debt" in await BadgeRepository(test_db).list_badges(tx.payer_id)

    async def test_stats(self, ledger, test_db):
        await ledger.create_transaction_for_platform("bob", "alice", Decimal("40"))
        tx = await ledger.create_transaction_for_platform("carol", "bob", Decimal("15"))
        await ledger.mark_transaction_paid(
            (await ledger.create_transaction_for_platform("bob", "dave", Decimal("5"))).id
        )

        stats = await BadgeRepository(test_db).get_stats(tx.payee_id)

        assert stats.transaction_count == 3
        assert stats.total_transacted == Decimal("60.00")
        assert stats.partner_count == 3
        assert stats.current_debt == Decimal("40.00")
        assert stats.last_debt_paid_at is not None

    async def test_debt_free_after_thirty_days(self, ledger, test_db):
        alice = await ledger.users.get_or_create("alice")
        await test_db["users"].update_one(
            {"_id": alice.id}, {"$set": {"created_at": datetime.now(timezone.utc) - timedelta(days=31)}}
        )

        await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))

        held = await BadgeRepository(test_db).list_badges(alice.id)
        assert "debt_free" in held
        bob = await ledger.users.get_by_platform_id("bob")
        assert "debt_free" not in await BadgeRepository(test_db).list_badges(bob.id)


@pytest.mark.asyncio
class TestUserReads:

    async def test_list_user_transactions(self, ledger):
        tx1 = await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))
        tx2 = await ledger.create_transaction_for_platform("bob", "carol", Decimal("20"))
        await ledger.mark_transaction_paid(tx1.id)

        unpaid = await ledger.list_user_transactions(tx1.payer_id)
        paid = await ledger.list_user_transactions(tx1.payer_id, paid=True)
        owed_to_alice = await ledger.list_user_transactions(tx1.payee_id, as_debtor=False, paid=True)

        assert [tx.id for tx in unpaid] == [tx2.id]
        assert [tx.id for tx in paid] == [tx1.id]
        assert [tx.id for tx in owed_to_alice] == [tx1.id]

    async def test_saved_promptpay_used_when_bill_names_none(self, ledger):
        await ledger.users.set_prompt_pay_id("payee", "0812345678")

        result, _ = await BillService(ledger).apportion_text_bill("payee", "!bill\n90 tea <@1> <@2>")
        named, _ = await BillService(ledger).apportion_text_bill("payee", "!bill 0899999999\n90 tea <@1> <@2>")

        assert result.prompt_pay_id == "0812345678"
        assert named.prompt_pay_id == "0899999999"
        assert (await ledger.users.get_by_platform_id("payee")).prompt_pay_id == "0812345678"

    async def test_praise_waits_for_confirmation(self, ledger):
        tx = await ledger.create_transaction_for_platform("bob", "alice", Decimal("10"))
        await ledger.mark_transaction_paid(tx.id)

        assert await ledger.notifier.pending_praise(tx.bill_id) == tx.payer_id
        # a failed post is not confirmed, so the praise is still pending
        assert await ledger.notifier.pending_praise(tx.bill_id) == tx.payer_id
        assert await ledger.notifier.confirm_praise(tx.bill_id) is True
        assert await ledger.notifier.confirm_praise(tx.bill_id) is False
        assert await ledger.notifier.pending_praise(tx.bill_id) is None
