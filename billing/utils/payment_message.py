"""
The payment-request message template.

Adapters post `<@DEBTOR> please pay 150.00 THB for "dinner" (TxIDs: 4, 5)`;
the reply carrying a slip quotes it back, and the ids in it tell the engine
which transactions the slip pays.
"""

import logging
import re
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from billing.core.config import settings
from billing.core.errors import ValidationError
from billing.utils.money import format_amount, quantize

logger = logging.getLogger(__name__)

REQUEST_RE = re.compile(r"<@!?(\d+)>\s+please pay\s+([\d.,]+)")
MULTI_IDS_RE = re.compile(r"\(?\s*Tx\s?IDs:\s*([^)\n]+)", re.IGNORECASE)
SINGLE_ID_RE = re.compile(r"\(?\s*Tx\s?ID:\s*(\d+)", re.IGNORECASE)


class PaymentRequest(BaseModel):
    debtor_platform_id: str
    amount: Decimal
    transaction_ids: List[int] = []


def parse_transaction_ids(text: str) -> List[int]:
    """
    TxIDs in a message; the multi-id form wins over the single-id form.

    A multi-id list with no parseable id falls back to the single-id form.
    """
    match = MULTI_IDS_RE.search(text)
    if match:
        ids = []
        for part in match.group(1).split(","):
            part = part.strip()
            if not part:
                continue
            if part.isdigit():
                ids.append(int(part))
            else:
                logger.warning("Skipping unparseable transaction id %r", part)
        if ids:
            return ids

    match = SINGLE_ID_RE.search(text)
    if match:
        return [int(match.group(1))]
    return []


def parse_payment_request(text: str) -> PaymentRequest:
    match = REQUEST_RE.search(text or "")
    if not match:
        raise ValidationError("Message is not a payment request")
    return PaymentRequest(
        debtor_platform_id=match.group(1),
        amount=quantize(match.group(2).replace(",", "")),
        transaction_ids=parse_transaction_ids(text),
    )


def format_payment_request(
    debtor_platform_id: str,
    amount: Decimal,
    transaction_ids: List[int],
    description: str = "",
    currency: Optional[str] = None,
) -> str:
    text = f"<@{debtor_platform_id}> please pay {format_amount(amount)} {currency or settings.CURRENCY_LABEL}"
    if description:
        text += f' for "{description}"'
    if len(transaction_ids) == 1:
        text += f" (TxID: {transaction_ids[0]})"
    elif transaction_ids:
        text += f" (TxIDs: {', '.join(str(i) for i in transaction_ids)})"
    return text
