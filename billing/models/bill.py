"""
Bill models - inputs and results of apportionment.

A bill is split per line item across that item's participants; surcharges
(VAT, service charge) are a percentage of the bill subtotal spread over
payers in proportion to what they owe before surcharges.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from billing.models.base import MongoModel, Money

ALL_PARTICIPANTS = "all"


class ApportionMode(str, Enum):
    PER_ITEM = "per_item"     # manual free-text bill: one transaction per (payer, item)
    COLLAPSED = "collapsed"   # OCR/web allocation: one transaction per payer


class LineItem(BaseModel):
    description: str
    amount: Decimal = Field(gt=0)
    # Platform ids, or ["all"] for every named participant of the bill
    participants: List[str]


class Surcharge(BaseModel):
    name: str
    rate: Decimal = Field(ge=0)


class ItemShare(BaseModel):
    description: str
    amount: Decimal


class Allocation(BaseModel):
    """Pure apportionment result, before anything is persisted."""
    subtotal: Decimal = Decimal("0")
    surcharge_total: Decimal = Decimal("0")
    shares: Dict[str, List[ItemShare]] = {}
    payer_subtotals: Dict[str, Decimal] = {}
    payer_surcharges: Dict[str, Decimal] = {}
    skipped_items: List[str] = []

    @property
    def grand_total(self) -> Decimal:
        return self.subtotal + self.surcharge_total

    def payer_total(self, payer: str) -> Decimal:
        return self.payer_subtotals.get(payer, Decimal("0")) + self.payer_surcharges.get(payer, Decimal("0"))


class Bill(MongoModel):
    payee_id: int
    description: str = ""
    ranks_assigned: int = 0


class ApportionResult(BaseModel):
    bill_id: int
    mode: ApportionMode
    subtotal: Money
    surcharge_total: Money
    grand_total: Money
    owed: Dict[str, Money] = {}
    transaction_ids: Dict[str, List[int]] = {}
    failures: Dict[str, str] = {}
    skipped_items: List[str] = []
    # Where payers should send money: given with the bill or saved by the payee
    prompt_pay_id: Optional[str] = None

    @property
    def has_errors(self) -> bool:
        return bool(self.failures)


class ScannedItem(BaseModel):
    """One receipt line as read by OCR; price is the line total."""
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = 1


class ScannedBill(BaseModel):
    """OCR output held in a bill session until the payee allocates it."""
    merchant_name: str = ""
    datetime: str = ""
    items: List[ScannedItem] = []
    sub_total: Decimal = Decimal("0")
    vat: Decimal = Decimal("0")
    service_charge: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
