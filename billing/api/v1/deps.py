import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from motor.motor_asyncio import AsyncIOMotorDatabase

from billing.core.config import settings
from billing.db.session import get_database
from billing.repositories.bill_session_repo import BillSessionRepository
from billing.services.bill_service import BillService
from billing.services.ledger_service import LedgerService
from billing.services.notifier import EventSink, LoggingEventSink
from billing.services.payment_service import PaymentService
from billing.services.verifier import SlipVerifierClient

api_key_header = APIKeyHeader(name="X-Adapter-Key", auto_error=False)


async def verify_adapter_key(api_key: Optional[str] = Security(api_key_header)) -> None:
    """Reject callers without the shared adapter key. Disabled when no key is configured."""
    if not settings.ADAPTER_API_KEY:
        return
    if api_key is None or not secrets.compare_digest(api_key, settings.ADAPTER_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid adapter key",
        )


def get_event_sink() -> EventSink:
    return LoggingEventSink()


def get_verifier() -> Optional[SlipVerifierClient]:
    if not settings.VERIFIER_API_URL:
        return None
    return SlipVerifierClient()


async def get_ledger_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    sink: EventSink = Depends(get_event_sink),
) -> LedgerService:
    return LedgerService(db, sink)


async def get_payment_service(
    ledger: LedgerService = Depends(get_ledger_service),
    verifier: Optional[SlipVerifierClient] = Depends(get_verifier),
) -> PaymentService:
    return PaymentService(ledger, verifier=verifier)


async def get_bill_service(ledger: LedgerService = Depends(get_ledger_service)) -> BillService:
    return BillService(ledger)


async def get_bill_sessions(db: AsyncIOMotorDatabase = Depends(get_database)) -> BillSessionRepository:
    return BillSessionRepository(db)
