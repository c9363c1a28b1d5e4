from fastapi import APIRouter, Depends

from billing.api.v1.deps import get_ledger_service
from billing.core.errors import NotFoundError
from billing.schemas.debt import DebtListResponse, DebtRole, PairResponse
from billing.schemas.transaction import TransactionResponse
from billing.services.ledger_service import LedgerService
from billing.utils.money import ZERO

router = APIRouter()


@router.get("/{platform_id}", response_model=DebtListResponse)
async def list_debts(
    platform_id: str,
    role: DebtRole = DebtRole.DEBTOR,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """What a user owes (role=debtor) or is owed (role=creditor)"""
    user = await ledger.users.get_by_platform_id(platform_id)
    if user is None:
        return DebtListResponse(platform_id=platform_id, role=role, total=ZERO)

    debts = await ledger.list_debts(user.id, as_debtor=role == DebtRole.DEBTOR)
    return DebtListResponse(
        platform_id=platform_id,
        role=role,
        total=sum((d.amount for d in debts), ZERO),
        debts=debts,
    )


@router.get("/{debtor_platform_id}/{creditor_platform_id}", response_model=PairResponse)
async def get_pair(
    debtor_platform_id: str,
    creditor_platform_id: str,
    ledger: LedgerService = Depends(get_ledger_service),
):
    debtor = await ledger.users.get_by_platform_id(debtor_platform_id)
    creditor = await ledger.users.get_by_platform_id(creditor_platform_id)
    if debtor is None or creditor is None:
        raise NotFoundError(f"No debt recorded from {debtor_platform_id} to {creditor_platform_id}")

    debt, unpaid = await ledger.get_pair(debtor.id, creditor.id)
    return PairResponse(
        debtor_platform_id=debtor_platform_id,
        creditor_platform_id=creditor_platform_id,
        amount=debt.amount,
        unpaid=[TransactionResponse.from_model(tx) for tx in unpaid],
    )
