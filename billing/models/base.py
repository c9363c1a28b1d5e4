from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from billing.utils.money import format_amount, from_bson


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Two-digit fixed-point amount; accepts Decimal128 from Mongo and
# serializes to "150.00" in JSON.
Money = Annotated[
    Decimal,
    BeforeValidator(from_bson),
    PlainSerializer(format_amount, return_type=str, when_used="json"),
]


class MongoModel(BaseModel):
    """Document with an integer _id allocated from the counters collection."""
    id: int = Field(alias="_id")
    created_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True
    )
