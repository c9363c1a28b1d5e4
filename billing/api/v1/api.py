from fastapi import APIRouter, Depends

from billing.api.v1.deps import verify_adapter_key
from billing.api.v1.endpoints import balances, bills, debts, payments, praise, streaks, transactions, users

api_router = APIRouter(dependencies=[Depends(verify_adapter_key)])

api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
api_router.include_router(debts.router, prefix="/debts", tags=["debts"])
api_router.include_router(balances.router, prefix="/balances", tags=["debts"])
api_router.include_router(payments.router, prefix="/payments", tags=["payments"])
api_router.include_router(bills.router, prefix="/bills", tags=["bills"])
api_router.include_router(streaks.router, prefix="/streaks", tags=["streaks"])
api_router.include_router(praise.router, prefix="/praise", tags=["streaks"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
