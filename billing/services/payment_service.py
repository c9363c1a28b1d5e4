"""
Payments reported from chat: a slip replying to a payment request, or a
payment an adapter has already confirmed.

With TxIDs in the request, each named transaction is marked paid on its own;
without them the payee is resolved from the amount and the pair's balance is
reduced.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from billing.core.config import settings
from billing.core.errors import (
    AlreadyPaidOrNotFound,
    LedgerError,
    NotFoundError,
    ValidationError,
    VerificationError,
)
from billing.models.base import Money
from billing.models.events import Event
from billing.services.ledger_service import LedgerService
from billing.services.payee_resolver import PayeeResolver
from billing.services.verifier import SlipVerification, SlipVerifierClient
from billing.utils.money import quantize
from billing.utils.payment_message import parse_payment_request

logger = logging.getLogger(__name__)


class PaymentReport(BaseModel):
    debtor_platform_id: str
    creditor_platform_id: Optional[str] = None
    amount: Money
    paid_ids: List[int] = []
    skipped_ids: List[int] = []  # already paid or unknown
    failed: Dict[int, str] = {}
    reduced: Optional[bool] = None
    events: List[Event] = []
    slip: Optional[SlipVerification] = None


class PaymentService:

    def __init__(
        self,
        ledger: LedgerService,
        resolver: Optional[PayeeResolver] = None,
        verifier: Optional[SlipVerifierClient] = None,
    ):
        self.ledger = ledger
        self.users = ledger.users
        self.resolver = resolver or PayeeResolver(ledger.ledger, ledger.users)
        self.verifier = verifier

    async def apply_payment(
        self,
        debtor_platform_id: str,
        amount: Decimal,
        transaction_ids: Optional[List[int]] = None,
    ) -> PaymentReport:
        """Settle a confirmed payment from debtor."""
        amount = quantize(amount)
        debtor = await self.users.get_or_create(debtor_platform_id)
        report = PaymentReport(debtor_platform_id=debtor_platform_id, amount=amount)

        if not transaction_ids:
            creditor_id = await self.resolver.resolve_payee(debtor.id, amount)
            report.creditor_platform_id = await self.users.get_platform_id(creditor_id)
            report.reduced = await self.ledger.reduce_debt_from_payment(debtor.id, creditor_id, amount)
            return report

        for tx_id in transaction_ids:
            try:
                tx = await self.ledger.get_transaction(tx_id)
                if tx.payer_id != debtor.id:
                    raise ValidationError(f"Transaction {tx_id} is owed by someone else")
                if report.creditor_platform_id is None:
                    report.creditor_platform_id = await self.users.get_platform_id(tx.payee_id)
                outcome = await self.ledger.mark_transaction_paid(tx_id)
            except (AlreadyPaidOrNotFound, NotFoundError):
                report.skipped_ids.append(tx_id)
                continue
            except LedgerError as e:
                logger.warning("Payment by %s: transaction %s not settled: %s", debtor_platform_id, tx_id, e.message)
                report.failed[tx_id] = e.message
                continue
            report.paid_ids.append(tx_id)
            report.events.extend(outcome.events)

        logger.info(
            "Payment by %s: %d paid, %d already paid or unknown, %d failed",
            debtor_platform_id, len(report.paid_ids), len(report.skipped_ids), len(report.failed),
        )
        return report

    async def verify_slip(
        self,
        request_text: str,
        uploader_platform_id: str,
        image: bytes,
        content_type: str = "image/png",
    ) -> PaymentReport:
        """
        Verify a slip sent in reply to a payment request, then apply it.

        Only the debtor named in the request may pay it, and the slip amount
        must match the requested amount within the match tolerance.
        """
        if self.verifier is None:
            raise VerificationError("Slip verification is not configured")

        request = parse_payment_request(request_text)
        if uploader_platform_id != request.debtor_platform_id:
            raise ValidationError("Only the debtor named in the payment request can submit its slip")

        slip = await self.verifier.verify_slip(request.amount, image, content_type)
        if abs(quantize(slip.amount) - request.amount) >= settings.MATCH_TOLERANCE:
            raise VerificationError(
                f"Slip amount {quantize(slip.amount)} does not match the requested {request.amount}"
            )

        report = await self.apply_payment(request.debtor_platform_id, request.amount, request.transaction_ids)
        report.slip = slip
        return report
