"""
Parser for free-text bills posted in chat:

    !bill 0812345678
    300 for pizza with <@111> <@222> <@333>
    90 drinks <@111> <@222>

The first line is the command with an optional PromptPay id. Each further
line is one item, in the long form `<amount> for <description> with
<mentions>` or the short form `<amount> <description> <mentions>`. The
mention `all` stands for everyone named elsewhere on the bill. A bad line
is reported and skipped; the others still count.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError as PydanticValidationError

from billing.core.errors import ValidationError
from billing.models.bill import ALL_PARTICIPANTS, LineItem

BILL_COMMAND = "!bill"
MENTION_RE = re.compile(r"^<@!?(\d+)>$")
PROMPTPAY_RE = re.compile(r"^(0\d{9}|\d{13}|ewallet-\d+)$")


class LineError(BaseModel):
    line: int
    message: str


class ParsedBill(BaseModel):
    prompt_pay_id: Optional[str] = None
    items: List[LineItem] = []
    errors: List[LineError] = []


def _strip_promptpay_id(value: str) -> str:
    value = value.strip()
    if value.lower().startswith("ewallet-"):
        return "ewallet-" + value[len("ewallet-"):].replace("-", "")
    return value.replace("-", "")


def is_valid_promptpay_id(value: str) -> bool:
    """Thai mobile number (10 digits, leading 0), national/tax id (13 digits) or `ewallet-<digits>`."""
    return bool(PROMPTPAY_RE.match(_strip_promptpay_id(value)))


def normalize_promptpay_id(value: str) -> str:
    """Dash-free form of a PromptPay id; raises ValidationError if it is not one."""
    if not is_valid_promptpay_id(value):
        raise ValidationError(f"PromptPay id '{value}' looks invalid")
    return _strip_promptpay_id(value)


def _amount(token: str) -> Decimal:
    try:
        amount = Decimal(token.replace(",", ""))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount '{token}'")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Amount must be positive, got '{token}'")
    return amount


def _mentions(tokens: List[str], description: str) -> List[str]:
    if not tokens:
        raise ValidationError(f"No users given for '{description}'")
    found = []
    for token in tokens:
        if token.lower() == ALL_PARTICIPANTS:
            found.append(ALL_PARTICIPANTS)
            continue
        match = MENTION_RE.match(token)
        if not match:
            raise ValidationError(f"Invalid user mention '{token}' for '{description}'")
        if match.group(1) not in found:
            found.append(match.group(1))
    return found


def parse_short_item(line: str) -> Tuple[Decimal, str, List[str]]:
    parts = line.split()
    if len(parts) < 3:
        raise ValidationError("Expected `<amount> <description> @user1 @user2...`")
    amount = _amount(parts[0])
    return amount, parts[1], _mentions(parts[2:], parts[1])


def parse_long_item(line: str) -> Tuple[Decimal, str, List[str]]:
    parts = line.split()
    if len(parts) < 4:
        raise ValidationError("Expected `<amount> for <description> with @user1 @user2...`")
    amount = _amount(parts[0])

    lowered = [p.lower() for p in parts]
    for_index = lowered.index("for") if "for" in lowered else -1
    with_index = lowered.index("with") if "with" in lowered else -1
    if for_index != 1 or with_index <= for_index:
        raise ValidationError("'for' must follow the amount and 'with' must follow the description")

    description = " ".join(parts[for_index + 1:with_index])
    if not description:
        raise ValidationError("Item description must not be empty")
    return amount, description, _mentions(parts[with_index + 1:], description)


def parse_item(line: str) -> LineItem:
    try:
        amount, description, mentions = parse_short_item(line)
    except ValidationError:
        amount, description, mentions = parse_long_item(line)
    try:
        return LineItem(description=description, amount=amount, participants=mentions)
    except PydanticValidationError as e:
        raise ValidationError(str(e))


def parse_bill_text(text: str) -> ParsedBill:
    """
    Parse a whole `!bill` message.

    Raises ValidationError only when the message is not a bill at all;
    problems with individual lines land in ParsedBill.errors, numbered
    from 1 for the command line.
    """
    lines = (text or "").strip().splitlines()
    if not lines:
        raise ValidationError("Empty bill")

    head = lines[0].split()
    if not head or head[0].lower() != BILL_COMMAND:
        raise ValidationError(f"A bill must start with {BILL_COMMAND}")
    if len(lines) < 2:
        raise ValidationError("A bill needs at least one item line")

    bill = ParsedBill()
    if len(head) > 1:
        if is_valid_promptpay_id(head[1]):
            bill.prompt_pay_id = normalize_promptpay_id(head[1])
        else:
            bill.errors.append(LineError(line=1, message=f"PromptPay id '{head[1]}' looks invalid"))

    for number, line in enumerate(lines[1:], start=2):
        line = line.strip()
        if not line:
            continue
        try:
            bill.items.append(parse_item(line))
        except ValidationError as e:
            bill.errors.append(LineError(line=number, message=e.message))
    return bill
