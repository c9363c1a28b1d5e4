from fastapi import APIRouter, Depends

from billing.api.v1.deps import get_ledger_service
from billing.core.errors import NotFoundError
from billing.schemas.user import PromptPayResponse, PromptPayUpdate
from billing.services.ledger_service import LedgerService
from billing.utils.bill_parser import normalize_promptpay_id

router = APIRouter()


@router.get("/{platform_id}/promptpay", response_model=PromptPayResponse)
async def get_prompt_pay_id(platform_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    """The PromptPay id a user saved for receiving payments"""
    user = await ledger.users.get_by_platform_id(platform_id)
    if user is None or not user.prompt_pay_id:
        raise NotFoundError(f"No PromptPay id saved for {platform_id}")
    return PromptPayResponse(platform_id=platform_id, prompt_pay_id=user.prompt_pay_id)


@router.put("/{platform_id}/promptpay", response_model=PromptPayResponse)
async def set_prompt_pay_id(
    platform_id: str,
    data: PromptPayUpdate,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Save a PromptPay id; bills that name none fall back to it"""
    user = await ledger.users.set_prompt_pay_id(platform_id, normalize_promptpay_id(data.prompt_pay_id))
    return PromptPayResponse(platform_id=platform_id, prompt_pay_id=user.prompt_pay_id)
