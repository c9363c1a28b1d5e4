"""
Balance reconciler.

Every change to a transaction's paid state, and every new transaction, moves
the matching user_debts row in the same storage transaction, so the aggregate
always equals the sum of the pair's unpaid transactions once writes settle.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from billing.core.errors import AlreadyPaidOrNotFound, LedgerError, NotFoundError, ValidationError
from billing.db.session import run_in_transaction
from billing.models.debt import AggregateDebt, DebtDetail, UserBalance
from billing.models.events import Event, PaymentOutcome, TransactionPaid, transaction_created
from billing.models.transaction import Transaction
from billing.repositories.ledger_repo import LedgerRepository
from billing.repositories.user_repo import UserRepository
from billing.services.notifier import EventSink, Notifier
from billing.services.streak_service import StreakService
from billing.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)

UNKNOWN_USER = "unknown"


class LedgerService:

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        sink: Optional[EventSink] = None,
        streaks: Optional[StreakService] = None,
    ):
        self.db = db
        self.users = UserRepository(db)
        self.ledger = LedgerRepository(db)
        self.streaks = streaks or StreakService(db)
        self.notifier = Notifier(self.streaks.rankings, sink)

    # ===== WRITES =====

    async def create_transaction(
        self,
        payer_id: int,
        payee_id: int,
        amount: Decimal,
        description: str = "",
        bill_id: Optional[int] = None,
    ) -> Transaction:
        """
        Record that payer owes payee amount and raise their aggregate.

        Without a bill_id the transaction gets a bill of its own.
        """
        created = await self.create_transactions(payer_id, payee_id, [(description, amount)], bill_id)
        return created[0]

    async def create_transactions(
        self,
        payer_id: int,
        payee_id: int,
        entries: Sequence[Tuple[str, Decimal]],
        bill_id: Optional[int] = None,
        bill_description: str = "",
    ) -> List[Transaction]:
        """Insert (description, amount) entries for one pair and one total delta, as one unit."""
        if payer_id == payee_id:
            raise ValidationError("Payer and payee must be different users")
        if not entries:
            raise ValidationError("Nothing to record")
        amounts = [quantize(amount) for _, amount in entries]
        for amount in amounts:
            if amount <= ZERO:
                raise ValidationError(f"Transaction amount must be positive, got {amount}")

        async def _create(session) -> List[Transaction]:
            target_bill = bill_id
            if target_bill is None:
                bill = await self.ledger.create_bill(
                    payee_id, bill_description or entries[0][0], session=session
                )
                target_bill = bill.id

            created = []
            for (description, _), amount in zip(entries, amounts):
                created.append(await self.ledger.create_transaction(
                    payer_id, payee_id, amount, description, target_bill, session=session
                ))
            await self.ledger.apply_debt_delta(payer_id, payee_id, sum(amounts, ZERO), session=session)
            return created

        created = await run_in_transaction(self.db, _create)
        logger.info(
            "Recorded %d transaction(s) %s: user %s owes user %s",
            len(created), [tx.id for tx in created], payer_id, payee_id,
        )
        events: List[Event] = [transaction_created(tx) for tx in created]
        events.extend(await self._badge_events(payer_id, payee_id))
        await self.notifier.publish_all(events)
        return created

    async def create_transaction_for_platform(
        self,
        payer_platform_id: str,
        payee_platform_id: str,
        amount: Decimal,
        description: str = "",
    ) -> Transaction:
        payer = await self.users.get_or_create(payer_platform_id)
        payee = await self.users.get_or_create(payee_platform_id)
        return await self.create_transaction(payer.id, payee.id, amount, description)

    async def apply_debt_delta(self, debtor_id: int, creditor_id: int, delta: Decimal) -> None:
        """Adjust a pair's balance directly. Negative deltas are allowed; no floor."""
        await self.ledger.apply_debt_delta(debtor_id, creditor_id, quantize(delta))

    async def mark_transaction_paid(self, transaction_id: int, paid_at: Optional[datetime] = None) -> PaymentOutcome:
        """
        Flip a transaction to paid, deduct it from the aggregate and rank the payer.

        Raises AlreadyPaidOrNotFound if another caller got there first or the
        id is unknown.
        """
        paid_at = paid_at or datetime.now(timezone.utc)

        async def _mark(session) -> PaymentOutcome:
            tx = await self.ledger.mark_paid(transaction_id, paid_at, session=session)
            if tx is None:
                raise AlreadyPaidOrNotFound(transaction_id)
            await self.ledger.apply_debt_delta(tx.payer_id, tx.payee_id, -tx.amount, session=session)
            rank, extra = await self.streaks.on_transaction_paid(tx, session=session)

            events: List[Event] = [TransactionPaid(
                transaction_id=tx.id, payer_id=tx.payer_id, payee_id=tx.payee_id, amount=tx.amount
            )]
            events.extend(extra)
            return PaymentOutcome(transaction=tx, rank=rank, events=events)

        outcome = await run_in_transaction(self.db, _mark)
        logger.info("Transaction %s marked paid (rank %s)", transaction_id, outcome.rank)
        outcome.events.extend(await self._badge_events(outcome.transaction.payer_id))
        await self.notifier.publish_all(outcome.events)
        return outcome

    async def _badge_events(self, *user_ids: int) -> List[Event]:
        """Milestone badges earned through a committed write; failures only cost the badge."""
        events: List[Event] = []
        for user_id in user_ids:
            try:
                events.extend(await self.streaks.check_badge_eligibility(user_id))
            except LedgerError as e:
                logger.warning("Badge check for user %s failed: %s", user_id, e.message)
        return events

    async def reduce_debt_from_payment(self, debtor_id: int, creditor_id: int, amount: Decimal) -> bool:
        """
        Apply a payment that names no transaction to the pair's balance.

        Overpayment clamps the balance at zero. No transaction is marked
        paid. Returns False when nothing was outstanding.
        """
        amount = quantize(amount)
        if amount <= ZERO:
            raise ValidationError(f"Payment amount must be positive, got {amount}")

        async def _reduce(session) -> bool:
            return await self.ledger.reduce_debt(debtor_id, creditor_id, amount, session=session)

        reduced = await run_in_transaction(self.db, _reduce)
        if reduced:
            logger.info("Reduced debt %s -> %s by %s", debtor_id, creditor_id, amount)
        else:
            logger.info("No outstanding debt %s -> %s to reduce", debtor_id, creditor_id)
        return reduced

    # ===== READS =====

    async def get_transaction(self, transaction_id: int) -> Transaction:
        tx = await self.ledger.get_transaction(transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return tx

    async def list_user_transactions(
        self, user_id: int, as_debtor: bool = True, paid: bool = False, limit: int = 20
    ) -> List[Transaction]:
        """Newest first; as_debtor picks transactions the user owes rather than is owed."""
        return await self.ledger.list_user_transactions(user_id, as_debtor=as_debtor, paid=paid, limit=limit)

    async def get_pair(self, debtor_id: int, creditor_id: int) -> Tuple[AggregateDebt, List[Transaction]]:
        debt = await self.ledger.get_aggregate_debt(debtor_id, creditor_id)
        if debt is None:
            raise NotFoundError(f"No debt recorded from user {debtor_id} to user {creditor_id}")
        unpaid = await self.ledger.list_unpaid_between(debtor_id, creditor_id)
        return debt, unpaid

    async def list_debts(self, user_id: int, as_debtor: bool = True) -> List[DebtDetail]:
        """Outstanding balances with the other party's platform id and recent unpaid items."""
        details = []
        for debt in await self.ledger.list_debts(user_id, as_debtor):
            other = debt.creditor_id if as_debtor else debt.debtor_id
            debtor, creditor = (user_id, other) if as_debtor else (other, user_id)
            details.append(DebtDetail(
                amount=debt.amount,
                other_party_id=other,
                other_party_platform_id=await self._display_id(other),
                recent=await self.ledger.list_recent_unpaid(debtor, creditor),
            ))
        return details

    async def get_user_balance(self, user_id: int) -> UserBalance:
        return await self.ledger.get_user_balance(user_id)

    async def _display_id(self, user_id: int) -> str:
        try:
            return await self.users.get_platform_id(user_id)
        except LedgerError as e:
            logger.warning("Platform id lookup for user %s failed: %s", user_id, e.message)
            return UNKNOWN_USER
