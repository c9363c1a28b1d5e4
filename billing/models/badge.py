from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from billing.models.base import Money


class BadgeStats(BaseModel):
    """What milestone badges are judged on, for one user."""
    transaction_count: int = 0
    total_transacted: Money = Decimal("0")   # as payer or payee, paid or not
    partner_count: int = 0                   # distinct users shared a transaction with
    current_debt: Money = Decimal("0")       # outstanding, across all creditors
    last_debt_paid_at: Optional[datetime] = None
    member_since: Optional[datetime] = None

    @property
    def debt_free_since(self) -> Optional[datetime]:
        """Start of the current debt-free stretch; None while the user owes anything."""
        if self.current_debt > 0:
            return None
        moments = [m for m in (self.member_since, self.last_debt_paid_at) if m is not None]
        return max(moments) if moments else None
