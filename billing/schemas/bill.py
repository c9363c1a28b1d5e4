from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from billing.models.bill import ApportionResult, ScannedBill
from billing.utils.bill_parser import LineError


class TextBillRequest(BaseModel):
    """A `!bill` chat message and its author, who paid the bill"""
    payee_platform_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


class TextBillResponse(BaseModel):
    result: ApportionResult
    line_errors: List[LineError] = []


class BillSessionCreate(BaseModel):
    payee_platform_id: str = Field(..., min_length=1)
    bill: ScannedBill


class BillSessionResponse(BaseModel):
    token: str
    expires_in: int


class AllocationRequest(BaseModel):
    """Submitted by the web allocation page"""
    token: str
    # item index -> platform ids, or ["all"]
    allocations: Dict[int, List[str]]
    add_vat: bool = False
    add_service_charge: bool = False
    # Falls back to the payee's saved PromptPay id
    prompt_pay_id: Optional[str] = None
