from fastapi import APIRouter, Depends

from billing.api.v1.deps import get_ledger_service
from billing.schemas.streak import PraiseConfirmation, PraiseResponse
from billing.services.ledger_service import LedgerService

router = APIRouter()


@router.get("/{bill_id}", response_model=PraiseResponse)
async def get_pending_praise(bill_id: int, ledger: LedgerService = Depends(get_ledger_service)):
    """
    Whether a bill's fastest payer still awaits their one-time praise.

    send=true means the caller should post the praise, then confirm it with
    POST /praise/{bill_id}/sent. Nothing is recorded until then.
    """
    user_id = await ledger.notifier.pending_praise(bill_id)
    if user_id is None:
        return PraiseResponse(bill_id=bill_id, send=False)
    return PraiseResponse(
        bill_id=bill_id,
        send=True,
        platform_id=await ledger.users.get_platform_id(user_id),
    )


@router.post("/{bill_id}/sent", response_model=PraiseConfirmation)
async def confirm_praise_sent(bill_id: int, ledger: LedgerService = Depends(get_ledger_service)):
    """Record that the praise was posted; recorded=false if someone else confirmed first"""
    return PraiseConfirmation(bill_id=bill_id, recorded=await ledger.notifier.confirm_praise(bill_id))
