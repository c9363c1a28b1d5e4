from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from billing.models.events import Event


class StreakResponse(BaseModel):
    platform_id: str
    current_streak: int
    longest_streak: int
    last_payment_date: Optional[datetime] = None
    rank1_count: int
    rank2_count: int
    rank3_count: int
    badges: List[str] = []


class RankingCreate(BaseModel):
    """Manual ranking entry"""
    bill_id: int
    platform_id: str = Field(..., min_length=1)
    rank: int = Field(..., ge=1, le=3)
    paid_at: datetime
    payment_duration: int = Field(0, ge=0)


class RankingResponse(BaseModel):
    events: List[Event] = []


class PraiseResponse(BaseModel):
    bill_id: int
    send: bool
    platform_id: Optional[str] = None


class PraiseConfirmation(BaseModel):
    bill_id: int
    recorded: bool
