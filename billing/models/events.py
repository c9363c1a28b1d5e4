"""
Structured events emitted by the engine.

Adapters translate these into user-facing messages; the engine itself never
talks to users.
"""

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from billing.models.base import Money, _utcnow
from billing.models.transaction import Transaction


class LedgerEvent(BaseModel):
    occurred_at: datetime = Field(default_factory=_utcnow)


class TransactionCreated(LedgerEvent):
    type: Literal["transaction_created"] = "transaction_created"
    transaction_id: int
    payer_id: int
    payee_id: int
    amount: Money
    bill_id: Optional[int] = None


class TransactionPaid(LedgerEvent):
    type: Literal["transaction_paid"] = "transaction_paid"
    transaction_id: int
    payer_id: int
    payee_id: int
    amount: Money


class RankAchieved(LedgerEvent):
    type: Literal["rank_achieved"] = "rank_achieved"
    bill_id: int
    user_id: int
    rank: int
    payment_duration: int


class BadgeEligible(LedgerEvent):
    type: Literal["badge_eligible"] = "badge_eligible"
    user_id: int
    badge: str


Event = Union[TransactionCreated, TransactionPaid, RankAchieved, BadgeEligible]


def transaction_created(tx: Transaction) -> TransactionCreated:
    return TransactionCreated(
        transaction_id=tx.id,
        payer_id=tx.payer_id,
        payee_id=tx.payee_id,
        amount=tx.amount,
        bill_id=tx.bill_id,
    )


class PaymentOutcome(BaseModel):
    """Result of marking one transaction paid."""
    transaction: Transaction
    rank: Optional[int] = None
    events: List[Event] = []
