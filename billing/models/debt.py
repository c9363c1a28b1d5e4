from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from billing.models.base import Money, _utcnow


class AggregateDebt(BaseModel):
    """
    Running balance for one ordered (debtor, creditor) pair.

    At quiescent points amount equals the sum of the pair's unpaid
    transactions. Rows are never deleted and may sit at zero.
    """
    model_config = ConfigDict(populate_by_name=True)

    debtor_id: int
    creditor_id: int
    amount: Money
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class TransactionSummary(BaseModel):
    id: int
    amount: Money
    description: str = ""


class DebtDetail(BaseModel):
    """One line of a debts/dues listing for a user."""
    amount: Money
    other_party_id: int
    other_party_platform_id: str
    recent: List[TransactionSummary] = []


class UserBalance(BaseModel):
    user_id: int
    owes: Money
    is_owed: Money
    net: Money
    last_transaction_at: Optional[datetime] = None
