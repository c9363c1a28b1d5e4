"""
Bill apportioner.

allocate_bill() is pure: it turns line items and surcharges into what each
payer owes. BillService persists that, one storage transaction per payer, so
one payer's failure never blocks the rest.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from billing.core.config import settings
from billing.core.errors import LedgerError, ValidationError
from billing.models.bill import (
    ALL_PARTICIPANTS,
    Allocation,
    ApportionMode,
    ApportionResult,
    ItemShare,
    LineItem,
    ScannedBill,
    Surcharge,
)
from billing.services.ledger_service import LedgerService
from billing.utils.bill_parser import LineError, normalize_promptpay_id, parse_bill_text
from billing.utils.money import ZERO, quantize

logger = logging.getLogger(__name__)


def _participants(item: LineItem, named: List[str]) -> List[str]:
    if ALL_PARTICIPANTS in item.participants:
        return list(named)
    seen = []
    for p in item.participants:
        if p not in seen:
            seen.append(p)
    return seen


def allocate_bill(
    payee: str,
    items: Sequence[LineItem],
    surcharges: Sequence[Surcharge] = (),
    dust: Optional[Decimal] = None,
) -> Allocation:
    """
    Split items across their participants and spread surcharges over payers.

    Shares stay at full precision here; they are rounded to cents only when
    persisted. The payee's own shares are never charged to anyone.
    """
    dust = settings.DUST_THRESHOLD if dust is None else dust

    # "all" means every platform id named explicitly anywhere on the bill
    named: List[str] = []
    for item in items:
        for p in item.participants:
            if p != ALL_PARTICIPANTS and p not in named:
                named.append(p)

    allocation = Allocation()
    shares: Dict[str, List[ItemShare]] = defaultdict(list)
    subtotals: Dict[str, Decimal] = defaultdict(Decimal)

    for item in items:
        people = _participants(item, named)
        if not people:
            allocation.skipped_items.append(item.description)
            continue
        per_person = item.amount / len(people)
        if per_person < dust:
            logger.info("Skipping %r: %s per person is below %s", item.description, per_person, dust)
            allocation.skipped_items.append(item.description)
            continue

        allocation.subtotal += item.amount
        for person in people:
            if person == payee:
                continue
            shares[person].append(ItemShare(description=item.description, amount=per_person))
            subtotals[person] += per_person

    rate = sum((s.rate for s in surcharges), Decimal("0"))
    allocation.surcharge_total = allocation.subtotal * rate

    payers_subtotal = sum(subtotals.values(), Decimal("0"))
    surcharge_shares: Dict[str, Decimal] = {}
    if allocation.surcharge_total and payers_subtotal:
        for person, amount in subtotals.items():
            surcharge_shares[person] = allocation.surcharge_total * amount / payers_subtotal

    for person in list(subtotals):
        if subtotals[person] + surcharge_shares.get(person, Decimal("0")) < dust:
            del subtotals[person]
            shares.pop(person, None)
            surcharge_shares.pop(person, None)

    allocation.shares = dict(shares)
    allocation.payer_subtotals = dict(subtotals)
    allocation.payer_surcharges = surcharge_shares
    return allocation


def _percent(rate: Decimal) -> str:
    return f"{(rate * 100).normalize():f}%"


def surcharges_from_flags(add_vat: bool, add_service_charge: bool) -> List[Surcharge]:
    surcharges = []
    if add_vat:
        surcharges.append(Surcharge(name=f"VAT {_percent(settings.VAT_RATE)}", rate=settings.VAT_RATE))
    if add_service_charge:
        surcharges.append(Surcharge(
            name=f"Service Charge {_percent(settings.SERVICE_CHARGE_RATE)}",
            rate=settings.SERVICE_CHARGE_RATE,
        ))
    return surcharges


def _surcharge_label(surcharges: Sequence[Surcharge]) -> str:
    return " and ".join(s.name for s in surcharges)


class BillService:

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger
        self.users = ledger.users

    def _entries(
        self,
        allocation: Allocation,
        payer: str,
        mode: ApportionMode,
        description: str,
        surcharges: Sequence[Surcharge],
    ) -> List[Tuple[str, Decimal]]:
        if mode == ApportionMode.COLLAPSED:
            return [(description, quantize(allocation.payer_total(payer)))]

        entries = [(share.description, quantize(share.amount)) for share in allocation.shares.get(payer, [])]
        surcharge = quantize(allocation.payer_surcharges.get(payer, ZERO))
        if surcharge > ZERO:
            entries.append((_surcharge_label(surcharges), surcharge))
        return [(desc, amount) for desc, amount in entries if amount > ZERO]

    async def apportion_bill(
        self,
        payee_platform_id: str,
        items: Sequence[LineItem],
        surcharges: Sequence[Surcharge] = (),
        mode: ApportionMode = ApportionMode.PER_ITEM,
        description: str = "",
        prompt_pay_id: Optional[str] = None,
    ) -> ApportionResult:
        """
        Record a bill, one storage transaction per payer.

        Without a prompt_pay_id the payee's saved one, if any, is reported.
        """
        if not items:
            raise ValidationError("A bill needs at least one item")
        if prompt_pay_id:
            prompt_pay_id = normalize_promptpay_id(prompt_pay_id)

        payee = await self.users.get_or_create(payee_platform_id)
        allocation = allocate_bill(payee_platform_id, items, surcharges)
        if mode == ApportionMode.COLLAPSED and surcharges:
            description = f"{description} (incl. {_surcharge_label(surcharges)})"

        bill = await self.ledger.ledger.create_bill(payee.id, description)
        result = ApportionResult(
            bill_id=bill.id,
            mode=mode,
            subtotal=allocation.subtotal,
            surcharge_total=allocation.surcharge_total,
            grand_total=allocation.grand_total,
            skipped_items=allocation.skipped_items,
            prompt_pay_id=prompt_pay_id or payee.prompt_pay_id,
        )

        for payer in sorted(allocation.payer_subtotals):
            entries = self._entries(allocation, payer, mode, description, surcharges)
            if not entries:
                continue
            try:
                user = await self.users.get_or_create(payer)
                created = await self.ledger.create_transactions(user.id, payee.id, entries, bill.id)
            except LedgerError as e:
                logger.warning("Bill %s: could not record debt for %s: %s", bill.id, payer, e.message)
                result.failures[payer] = e.message
                continue
            result.owed[payer] = sum((tx.amount for tx in created), ZERO)
            result.transaction_ids[payer] = [tx.id for tx in created]

        logger.info(
            "Bill %s by %s: %d payer(s), %d failure(s)",
            bill.id, payee_platform_id, len(result.owed), len(result.failures),
        )
        return result

    async def apportion_text_bill(
        self, payee_platform_id: str, text: str
    ) -> Tuple[ApportionResult, List[LineError]]:
        """Parse a `!bill` message and record it item by item."""
        parsed = parse_bill_text(text)
        if not parsed.items:
            raise ValidationError("No valid item lines in bill")
        description = ", ".join(item.description for item in parsed.items)
        result = await self.apportion_bill(
            payee_platform_id,
            parsed.items,
            mode=ApportionMode.PER_ITEM,
            description=description,
            prompt_pay_id=parsed.prompt_pay_id,
        )
        return result, parsed.errors

    async def apportion_scanned_bill(
        self,
        payee_platform_id: str,
        bill: ScannedBill,
        allocations: Dict[int, List[str]],
        add_vat: bool = False,
        add_service_charge: bool = False,
        prompt_pay_id: Optional[str] = None,
    ) -> ApportionResult:
        """Record an OCR bill allocated on the web page, one transaction per payer."""
        items = []
        for index, participants in sorted(allocations.items()):
            if not participants:
                continue
            if index < 0 or index >= len(bill.items):
                raise ValidationError(f"No item {index} on this bill")
            scanned = bill.items[index]
            if scanned.price <= 0:
                continue
            items.append(LineItem(
                description=f"{scanned.name} (x{scanned.quantity})",
                amount=scanned.price,
                participants=participants,
            ))
        if not items:
            raise ValidationError("No items were allocated to anyone")

        description = f"All items from {bill.merchant_name or 'bill'}"
        if bill.datetime:
            description += f" on {bill.datetime}"
        return await self.apportion_bill(
            payee_platform_id,
            items,
            surcharges_from_flags(add_vat, add_service_charge),
            mode=ApportionMode.COLLAPSED,
            description=description,
            prompt_pay_id=prompt_pay_id,
        )
