from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from billing.models.base import _utcnow

RANKS = (1, 2, 3)


class PaymentRanking(BaseModel):
    """Which user achieved a rank on a bill. One occupant per (bill_id, rank)."""
    model_config = ConfigDict(populate_by_name=True)

    bill_id: int
    rank: int = Field(ge=1, le=3)
    user_id: int
    paid_at: datetime
    payment_duration: int = 0  # seconds from bill creation to payment
    received_praise: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class PaymentStreak(BaseModel):
    """Rolling payment streak and lifetime rank counts for one user."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="_id")
    current_streak: int = 0
    longest_streak: int = 0
    last_payment_date: Optional[datetime] = None
    rank1_count: int = 0
    rank2_count: int = 0
    rank3_count: int = 0
    updated_at: datetime = Field(default_factory=_utcnow)
