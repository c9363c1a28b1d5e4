from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from billing.api.v1.deps import get_ledger_service
from billing.schemas.debt import DebtRole
from billing.schemas.transaction import (
    MarkPaidRequest,
    PaymentOutcomeResponse,
    TransactionCreate,
    TransactionResponse,
)
from billing.services.ledger_service import LedgerService

router = APIRouter()


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    data: TransactionCreate,
    ledger: LedgerService = Depends(get_ledger_service),
):
    """Record that payer owes payee (also backs the !qr command)"""
    tx = await ledger.create_transaction_for_platform(
        data.payer_platform_id, data.payee_platform_id, data.amount, data.description
    )
    return TransactionResponse.from_model(tx)


@router.get("", response_model=List[TransactionResponse])
async def list_transactions(
    platform_id: str,
    role: DebtRole = DebtRole.DEBTOR,
    paid: bool = False,
    limit: int = Query(20, ge=1, le=100),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """A user's transactions as payer (role=debtor) or payee (role=creditor), newest first"""
    user = await ledger.users.get_by_platform_id(platform_id)
    if user is None:
        return []
    txs = await ledger.list_user_transactions(user.id, as_debtor=role == DebtRole.DEBTOR, paid=paid, limit=limit)
    return [TransactionResponse.from_model(tx) for tx in txs]


@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(transaction_id: int, ledger: LedgerService = Depends(get_ledger_service)):
    return TransactionResponse.from_model(await ledger.get_transaction(transaction_id))


@router.post("/{transaction_id}/paid", response_model=PaymentOutcomeResponse)
async def mark_transaction_paid(
    transaction_id: int,
    data: Optional[MarkPaidRequest] = Body(None),
    ledger: LedgerService = Depends(get_ledger_service),
):
    """
    Mark a transaction paid.

    Returns 409 with benign=true when it was already paid or does not exist.
    """
    outcome = await ledger.mark_transaction_paid(transaction_id, data.paid_at if data else None)
    return PaymentOutcomeResponse.from_outcome(outcome)
