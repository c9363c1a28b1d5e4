from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from billing.models.base import Money
from billing.models.events import Event, PaymentOutcome
from billing.models.transaction import Transaction


class TransactionCreate(BaseModel):
    """Schema for recording that payer owes payee"""
    payer_platform_id: str = Field(..., min_length=1)
    payee_platform_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: str = Field("", max_length=500)


class TransactionResponse(BaseModel):
    id: int = Field(validation_alias="_id", serialization_alias="id")
    payer_id: int
    payee_id: int
    amount: Money
    description: str
    paid: bool
    bill_id: Optional[int] = None
    created_at: datetime
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_model(cls, tx: Transaction) -> "TransactionResponse":
        return cls(**tx.model_dump(by_alias=True))


class MarkPaidRequest(BaseModel):
    paid_at: Optional[datetime] = None


class PaymentOutcomeResponse(BaseModel):
    transaction: TransactionResponse
    rank: Optional[int] = None
    events: List[Event] = []

    @classmethod
    def from_outcome(cls, outcome: PaymentOutcome) -> "PaymentOutcomeResponse":
        return cls(
            transaction=TransactionResponse.from_model(outcome.transaction),
            rank=outcome.rank,
            events=outcome.events,
        )
