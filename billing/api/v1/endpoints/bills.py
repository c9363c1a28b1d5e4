from fastapi import APIRouter, Depends, status

from billing.api.v1.deps import get_bill_service, get_bill_sessions
from billing.core.config import settings
from billing.core.errors import LedgerError, NotFoundError, ValidationError
from billing.core.security import create_session_token, decode_session_token
from billing.models.bill import ApportionResult, ScannedBill
from billing.repositories.bill_session_repo import BillSessionRepository
from billing.schemas.bill import (
    AllocationRequest,
    BillSessionCreate,
    BillSessionResponse,
    TextBillRequest,
    TextBillResponse,
)
from billing.services.bill_service import BillService

router = APIRouter()


@router.post("/text", response_model=TextBillResponse, status_code=status.HTTP_201_CREATED)
async def create_text_bill(data: TextBillRequest, bills: BillService = Depends(get_bill_service)):
    """Record a free-text `!bill`, one transaction per payer and item"""
    result, line_errors = await bills.apportion_text_bill(data.payee_platform_id, data.text)
    return TextBillResponse(result=result, line_errors=line_errors)


@router.post("/sessions", response_model=BillSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_bill_session(
    data: BillSessionCreate,
    sessions: BillSessionRepository = Depends(get_bill_sessions),
):
    """Hold OCR bill data for the web allocation page"""
    session_id = await sessions.create(data.payee_platform_id, data.bill.model_dump(mode="json"))
    return BillSessionResponse(
        token=create_session_token(session_id, data.payee_platform_id),
        expires_in=settings.BILL_SESSION_TTL_SECONDS,
    )


@router.post("/allocations", response_model=ApportionResult, status_code=status.HTTP_201_CREATED)
async def submit_allocations(
    data: AllocationRequest,
    sessions: BillSessionRepository = Depends(get_bill_sessions),
    bills: BillService = Depends(get_bill_service),
):
    """
    Webhook for the allocation page; a session is spent by its first accepted submission.

    A rejected submission puts the session back so the payee can correct it.
    """
    claims = decode_session_token(data.token)
    stored = await sessions.consume(claims["sub"])
    if stored is None:
        raise NotFoundError("Bill session expired or already submitted")
    try:
        if stored["payee_platform_id"] != claims["payee"]:
            raise ValidationError("Bill session does not belong to this token")
        return await bills.apportion_scanned_bill(
            stored["payee_platform_id"],
            ScannedBill(**stored["bill"]),
            data.allocations,
            add_vat=data.add_vat,
            add_service_charge=data.add_service_charge,
            prompt_pay_id=data.prompt_pay_id,
        )
    except LedgerError:
        await sessions.restore(stored)
        raise
