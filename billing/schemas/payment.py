from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class ResolvePayeeRequest(BaseModel):
    debtor_platform_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class ResolvePayeeResponse(BaseModel):
    creditor_platform_id: str


class ReduceDebtRequest(BaseModel):
    debtor_platform_id: str = Field(..., min_length=1)
    creditor_platform_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class ReduceDebtResponse(BaseModel):
    reduced: bool


class ApplyPaymentRequest(BaseModel):
    """A payment the adapter has already confirmed"""
    debtor_platform_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    transaction_ids: List[int] = []


class SlipRequest(BaseModel):
    """A slip image sent in reply to a payment request message"""
    request_text: str = Field(..., min_length=1)
    uploader_platform_id: str = Field(..., min_length=1)
    image_base64: str = Field(..., min_length=1)
    content_type: str = "image/png"


class PaymentMessageRequest(BaseModel):
    debtor_platform_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    transaction_ids: List[int] = []
    description: str = ""


class PaymentMessageResponse(BaseModel):
    text: str
