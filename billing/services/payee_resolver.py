import logging
from decimal import Decimal
from typing import Optional

from billing.core.config import settings
from billing.core.errors import AmbiguousError, NotFoundError
from billing.repositories.ledger_repo import LedgerRepository
from billing.repositories.user_repo import UserRepository
from billing.utils.money import quantize

logger = logging.getLogger(__name__)


class PayeeResolver:
    """
    Work out who a payment without a transaction reference was meant for.

    1. Aggregate balances of the debtor within tolerance of the amount.
    2. Failing that, payees of single unpaid transactions within tolerance.

    The first step with exactly one candidate wins. Every call reads the
    database; results are never cached.
    """

    def __init__(self, ledger: LedgerRepository, users: UserRepository, tolerance: Optional[Decimal] = None):
        self.ledger = ledger
        self.users = users
        self.tolerance = tolerance if tolerance is not None else settings.MATCH_TOLERANCE

    async def resolve_payee(self, debtor_id: int, amount: Decimal) -> int:
        amount = quantize(amount)

        matches = await self.ledger.find_debts_matching(debtor_id, amount, self.tolerance)
        if len(matches) == 1:
            return matches[0].creditor_id
        ambiguous = len(matches) > 1

        payees = await self.ledger.find_unpaid_payees_matching(debtor_id, amount, self.tolerance)
        if len(payees) == 1:
            return payees[0]

        if ambiguous or len(payees) > 1:
            logger.info("Ambiguous payee for user %s paying %s", debtor_id, amount)
            raise AmbiguousError(
                f"More than one person is owed {amount}; "
                "reply to the payment request that has the TxID to say which one"
            )
        raise NotFoundError(
            f"No outstanding debt of {amount} found; "
            "reply to the payment request that has the TxID"
        )

    async def resolve_payee_platform_id(self, debtor_platform_id: str, amount: Decimal) -> str:
        debtor = await self.users.get_by_platform_id(debtor_platform_id)
        if debtor is None:
            raise NotFoundError(f"No debts recorded for {debtor_platform_id}")
        creditor_id = await self.resolve_payee(debtor.id, amount)
        return await self.users.get_platform_id(creditor_id)
