"""
Transaction model - one ledger entry: payer owes payee amount.

Design principles:
- Append-only; created unpaid
- Mutated exactly once, unpaid -> paid, by the reconciliation path
- Once paid, amount and parties never change
- Amounts are two-digit Decimals, stored as Decimal128
"""

from datetime import datetime
from typing import Optional

from billing.models.base import MongoModel, Money


class Transaction(MongoModel):
    """
    Ledger entry: payer_id owes payee_id amount.

    Invariants:
    - amount > 0
    - paid_at is set iff paid
    """
    payer_id: int
    payee_id: int
    amount: Money
    description: str = ""
    paid: bool = False
    bill_id: Optional[int] = None
    paid_at: Optional[datetime] = None

