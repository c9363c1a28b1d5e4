import base64
import binascii

from fastapi import APIRouter, Depends

from billing.api.v1.deps import get_ledger_service, get_payment_service
from billing.core.errors import ValidationError
from billing.schemas.payment import (
    ApplyPaymentRequest,
    PaymentMessageRequest,
    PaymentMessageResponse,
    ReduceDebtRequest,
    ReduceDebtResponse,
    ResolvePayeeRequest,
    ResolvePayeeResponse,
    SlipRequest,
)
from billing.services.ledger_service import LedgerService
from billing.services.payment_service import PaymentReport, PaymentService
from billing.utils.payment_message import format_payment_request

router = APIRouter()


@router.post("/resolve", response_model=ResolvePayeeResponse)
async def resolve_payee(data: ResolvePayeeRequest, payments: PaymentService = Depends(get_payment_service)):
    """Who a payment of this amount is for; 409 if more than one person fits"""
    creditor = await payments.resolver.resolve_payee_platform_id(data.debtor_platform_id, data.amount)
    return ResolvePayeeResponse(creditor_platform_id=creditor)


@router.post("/reduce", response_model=ReduceDebtResponse)
async def reduce_debt(data: ReduceDebtRequest, ledger: LedgerService = Depends(get_ledger_service)):
    debtor = await ledger.users.get_by_platform_id(data.debtor_platform_id)
    creditor = await ledger.users.get_by_platform_id(data.creditor_platform_id)
    if debtor is None or creditor is None:
        return ReduceDebtResponse(reduced=False)
    reduced = await ledger.reduce_debt_from_payment(debtor.id, creditor.id, data.amount)
    return ReduceDebtResponse(reduced=reduced)


@router.post("/apply", response_model=PaymentReport)
async def apply_payment(data: ApplyPaymentRequest, payments: PaymentService = Depends(get_payment_service)):
    return await payments.apply_payment(data.debtor_platform_id, data.amount, data.transaction_ids)


@router.post("/slip", response_model=PaymentReport)
async def verify_slip(data: SlipRequest, payments: PaymentService = Depends(get_payment_service)):
    """Verify a slip replying to a payment request and settle what it pays"""
    try:
        image = base64.b64decode(data.image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("image_base64 is not valid base64")
    return await payments.verify_slip(data.request_text, data.uploader_platform_id, image, data.content_type)


@router.post("/message", response_model=PaymentMessageResponse)
async def payment_message(data: PaymentMessageRequest):
    """Render the payment-request text that slips are later matched against"""
    return PaymentMessageResponse(text=format_payment_request(
        data.debtor_platform_id, data.amount, data.transaction_ids, data.description
    ))
