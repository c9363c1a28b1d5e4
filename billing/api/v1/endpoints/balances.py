from fastapi import APIRouter, Depends

from billing.api.v1.deps import get_ledger_service
from billing.schemas.debt import BalanceResponse
from billing.services.ledger_service import LedgerService
from billing.utils.money import ZERO

router = APIRouter()


@router.get("/{platform_id}", response_model=BalanceResponse)
async def get_balance(platform_id: str, ledger: LedgerService = Depends(get_ledger_service)):
    """Owes / is owed / net for one user"""
    user = await ledger.users.get_by_platform_id(platform_id)
    if user is None:
        return BalanceResponse(platform_id=platform_id, owes=ZERO, is_owed=ZERO, net=ZERO)

    balance = await ledger.get_user_balance(user.id)
    return BalanceResponse(platform_id=platform_id, **balance.model_dump(exclude={"user_id"}))
