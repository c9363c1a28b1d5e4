from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from billing.models.base import Money
from billing.models.debt import DebtDetail
from billing.schemas.transaction import TransactionResponse


class DebtRole(str, Enum):
    DEBTOR = "debtor"
    CREDITOR = "creditor"


class DebtListResponse(BaseModel):
    platform_id: str
    role: DebtRole
    total: Money
    debts: List[DebtDetail] = []


class PairResponse(BaseModel):
    debtor_platform_id: str
    creditor_platform_id: str
    amount: Money
    unpaid: List[TransactionResponse] = []


class BalanceResponse(BaseModel):
    platform_id: str
    owes: Money
    is_owed: Money
    net: Money
    last_transaction_at: Optional[datetime] = None
