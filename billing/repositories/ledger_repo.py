"""
LedgerRepository - transactions and aggregate debts.

Storage rules:
1. transactions are inserted unpaid and flipped to paid exactly once
2. user_debts holds one row per (debtor, creditor); deltas are applied with
   a single $inc upsert, never read-then-write
3. A paid flip and its aggregate deduction share one storage transaction
   (the caller passes the session)
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from billing.core.errors import ValidationError
from billing.db.mongo import next_sequence
from billing.db.session import storage_errors
from billing.models.bill import Bill
from billing.models.debt import AggregateDebt, TransactionSummary, UserBalance
from billing.models.transaction import Transaction
from billing.utils.money import ZERO, from_bson, quantize, to_bson

# Balances at or below this are treated as settled
SETTLED_EPSILON = Decimal("0.009")


class LedgerRepository:
    """Repository for transactions and the user_debts aggregate."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.transactions = db["transactions"]
        self.debts = db["user_debts"]
        self.bills = db["bills"]

    # ===== WRITES =====

    @storage_errors
    async def create_bill(self, payee_id: int, description: str = "", session=None) -> Bill:
        bill = Bill(
            _id=await next_sequence(self.db, "bills"),
            payee_id=payee_id,
            description=description,
        )
        await self.bills.insert_one(bill.model_dump(by_alias=True), session=session)
        return bill

    @storage_errors
    async def create_transaction(
        self,
        payer_id: int,
        payee_id: int,
        amount: Decimal,
        description: str = "",
        bill_id: Optional[int] = None,
        session=None,
    ) -> Transaction:
        """
        Insert an unpaid transaction.

        Raises ValidationError if amount <= 0 after rounding to cents. The
        caller is responsible for the matching apply_debt_delta.
        """
        amount = quantize(amount)
        if amount <= ZERO:
            raise ValidationError(f"Transaction amount must be positive, got {amount}")

        now = datetime.now(timezone.utc)
        # Ids come from outside the session so counters never become a
        # write-conflict hot spot; aborted inserts just leave gaps.
        tx_id = await next_sequence(self.db, "transactions")
        doc = {
            "_id": tx_id,
            "payer_id": payer_id,
            "payee_id": payee_id,
            "amount": to_bson(amount),
            "description": description,
            "paid": False,
            "bill_id": bill_id,
            "created_at": now,
            "paid_at": None,
        }
        await self.transactions.insert_one(doc, session=session)
        return Transaction(**doc)

    @storage_errors
    async def apply_debt_delta(self, debtor_id: int, creditor_id: int, delta: Decimal, session=None) -> None:
        """Atomically add delta to the (debtor, creditor) balance, creating the row if needed."""
        now = datetime.now(timezone.utc)
        await self.debts.update_one(
            {"debtor_id": debtor_id, "creditor_id": creditor_id},
            {
                "$inc": {"amount": to_bson(delta)},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            session=session,
        )

    @storage_errors
    async def mark_paid(self, transaction_id: int, paid_at: datetime, session=None) -> Optional[Transaction]:
        """
        Flip an unpaid transaction to paid.

        The conditional update is the lock: only one writer can match
        paid=False. Returns None if the transaction is missing or already paid.
        """
        doc = await self.transactions.find_one_and_update(
            {"_id": transaction_id, "paid": False},
            {"$set": {"paid": True, "paid_at": paid_at}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            return None
        return Transaction(**doc)

    @storage_errors
    async def reduce_debt(self, debtor_id: int, creditor_id: int, amount: Decimal, session=None) -> bool:
        """
        Subtract a payment from the pair's balance, clamping at zero.

        Returns False when there was no outstanding balance to reduce.
        """
        result = await self.debts.update_one(
            {
                "debtor_id": debtor_id,
                "creditor_id": creditor_id,
                "amount": {"$gt": Decimal128(SETTLED_EPSILON)},
            },
            [
                {"$set": {
                    "amount": {"$max": [
                        {"$subtract": ["$amount", to_bson(amount)]},
                        Decimal128("0.00"),
                    ]},
                    "updated_at": "$$NOW",
                }}
            ],
            session=session,
        )
        return result.modified_count > 0

    # ===== READS =====

    @storage_errors
    async def get_transaction(self, transaction_id: int, session=None) -> Optional[Transaction]:
        doc = await self.transactions.find_one({"_id": transaction_id}, session=session)
        if doc:
            return Transaction(**doc)
        return None

    @storage_errors
    async def get_aggregate_debt(self, debtor_id: int, creditor_id: int) -> Optional[AggregateDebt]:
        doc = await self.debts.find_one({"debtor_id": debtor_id, "creditor_id": creditor_id})
        if doc:
            return AggregateDebt(**doc)
        return None

    @storage_errors
    async def find_debts_matching(self, debtor_id: int, amount: Decimal, tolerance: Decimal) -> List[AggregateDebt]:
        """Aggregate rows of debtor whose balance is within tolerance of amount."""
        lower = max(amount - tolerance, SETTLED_EPSILON)
        docs = await self.debts.find({
            "debtor_id": debtor_id,
            "amount": {"$gt": Decimal128(lower), "$lt": Decimal128(amount + tolerance)},
        }).to_list(None)
        return [AggregateDebt(**doc) for doc in docs]

    @storage_errors
    async def find_unpaid_payees_matching(self, debtor_id: int, amount: Decimal, tolerance: Decimal) -> List[int]:
        """Distinct payees with an unpaid transaction from debtor within tolerance of amount."""
        payees = await self.transactions.distinct("payee_id", {
            "payer_id": debtor_id,
            "paid": False,
            "amount": {"$gt": Decimal128(amount - tolerance), "$lt": Decimal128(amount + tolerance)},
        })
        return sorted(payees)

    @storage_errors
    async def list_unpaid_between(self, debtor_id: int, creditor_id: int, limit: int = 0) -> List[Transaction]:
        """Unpaid transactions for the pair, oldest first."""
        cursor = self.transactions.find({
            "payer_id": debtor_id,
            "payee_id": creditor_id,
            "paid": False,
        }).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
        if limit > 0:
            cursor = cursor.limit(limit)
        docs = await cursor.to_list(None)
        return [Transaction(**doc) for doc in docs]

    @storage_errors
    async def list_recent_unpaid(self, debtor_id: int, creditor_id: int, limit: int = 5) -> List[TransactionSummary]:
        docs = await self.transactions.find(
            {"payer_id": debtor_id, "payee_id": creditor_id, "paid": False},
            {"amount": 1, "description": 1},
        ).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit).to_list(None)
        return [
            TransactionSummary(id=doc["_id"], amount=doc["amount"], description=doc.get("description", ""))
            for doc in docs
        ]

    @storage_errors
    async def list_debts(self, user_id: int, as_debtor: bool = True) -> List[AggregateDebt]:
        """Outstanding balances where user is debtor (or creditor), largest first."""
        field = "debtor_id" if as_debtor else "creditor_id"
        docs = await self.debts.find({
            field: user_id,
            "amount": {"$gt": Decimal128(SETTLED_EPSILON)},
        }).sort("amount", DESCENDING).to_list(None)
        return [AggregateDebt(**doc) for doc in docs]

    @storage_errors
    async def list_user_transactions(
        self, user_id: int, as_debtor: bool = True, paid: bool = False, limit: int = 20
    ) -> List[Transaction]:
        field = "payer_id" if as_debtor else "payee_id"
        docs = await self.transactions.find(
            {field: user_id, "paid": paid}
        ).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit).to_list(None)
        return [Transaction(**doc) for doc in docs]

    @storage_errors
    async def sum_unpaid(self, debtor_id: int, creditor_id: int) -> Decimal:
        """Sum of unpaid transaction amounts for the pair (what the aggregate must equal)."""
        result = await self.transactions.aggregate([
            {"$match": {"payer_id": debtor_id, "payee_id": creditor_id, "paid": False}},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ]).to_list(1)
        return from_bson(result[0]["total"]) if result else ZERO

    @storage_errors
    async def get_user_balance(self, user_id: int) -> UserBalance:
        """
        Aggregate a user's position across all pairs.

        owes: sum of positive balances where user is debtor
        is_owed: sum of positive balances where user is creditor
        net: is_owed - owes (positive = net creditor)
        """
        async def _total(field: str) -> Decimal:
            result = await self.debts.aggregate([
                {"$match": {field: user_id, "amount": {"$gt": Decimal128(SETTLED_EPSILON)}}},
                {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
            ]).to_list(1)
            return from_bson(result[0]["total"]) if result else ZERO

        owes = await _total("debtor_id")
        is_owed = await _total("creditor_id")

        last = await self.transactions.find_one(
            {"$or": [{"payer_id": user_id}, {"payee_id": user_id}]},
            sort=[("created_at", DESCENDING)],
        )
        return UserBalance(
            user_id=user_id,
            owes=owes,
            is_owed=is_owed,
            net=is_owed - owes,
            last_transaction_at=last["created_at"] if last else None,
        )
