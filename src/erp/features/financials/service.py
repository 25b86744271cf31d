import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Optional

from ...common.cache import EntityCache
from ...common.codecs import dump_json, or_default, parse_json, to_decimal
from ...common.errors import NotFoundError, ValidationError
from ...common.store import RemoteStore, Row
from ...core.config import BUSINESS_ID
from .schemas import (
    FinancialReportLine,
    FinancialSummary,
    FinancialTransaction,
    FinancialTransactionCreate,
    FinancialTransactionUpdate,
)

logger = logging.getLogger(__name__)

TRANSACTIONS_TABLE = "financial_transactions"

# Unique on the table; the idempotency key for order-generated entries.
REFERENCE_KEY = ("reference_number", "category", "type")


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def decode_transaction(row: Row) -> FinancialTransaction:
    return FinancialTransaction(
        id=str(row["id"]),
        type="income" if row.get("type") == "income" else "expense",
        amount=to_decimal(row.get("amount")),
        category=or_default(row.get("category"), ""),
        description=or_default(row.get("description"), ""),
        date=row.get("date") or row.get("created_at") or _now(),
        payment_method=row.get("payment_method") or "cash",
        reference_number=or_default(row.get("reference_number"), ""),
        bill_images=[str(image) for image in parse_json(row.get("bill_images"), [])],
        created_at=row.get("created_at"),
    )


def _encode(fields: dict) -> Row:
    row = dict(fields)
    if "bill_images" in row:
        row["bill_images"] = dump_json(row["bill_images"] or [])
    if "description" in row:
        row["description"] = or_default(row["description"], "")
    if "reference_number" in row:
        row["reference_number"] = (row["reference_number"] or "").strip() or None
    return row


class FinancialTransactionRepository:
    def __init__(self, store: RemoteStore, business_id: str = BUSINESS_ID):
        self.store = store
        self.business_id = business_id
        self.transactions: EntityCache[FinancialTransaction] = EntityCache()
        self.lock = asyncio.Lock()

    def get_by_id(self, transaction_id: str) -> Optional[FinancialTransaction]:
        return self.transactions.get(transaction_id)

    def list_transactions(self) -> list[FinancialTransaction]:
        return list(self.transactions)

    def find_for_reference(self, reference_number: str, category: Optional[str] = None) -> list[FinancialTransaction]:
        return [
            t for t in self.transactions
            if t.reference_number == reference_number and (category is None or t.category == category)
        ]

    async def fetch_all(self) -> list[FinancialTransaction]:
        rows = await self.store.select(TRANSACTIONS_TABLE, order_by=("-date",), business_id=self.business_id)
        transactions = [decode_transaction(row) for row in rows]
        self.transactions.replace_all(transactions)
        return transactions

    async def create(self, transaction_in: FinancialTransactionCreate) -> FinancialTransaction:
        """
        Records a manual income or expense entry.

        Args:
            transaction_in: The entry to record. `date` defaults to now.

        Returns:
            The stored transaction.
        """
        category = transaction_in.category.strip()
        if not category:
            raise ValidationError("Transaction category is required")
        values = _encode(transaction_in.model_dump())
        values.update(category=category, business_id=self.business_id, date=transaction_in.date or _now())
        async with self.lock:
            transaction = decode_transaction(await self.store.insert(TRANSACTIONS_TABLE, values))
            self.transactions.prepend(transaction)
        return transaction

    async def update(self, transaction_id: str, transaction_in: FinancialTransactionUpdate) -> FinancialTransaction:
        changes = transaction_in.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields for update")
        async with self.lock:
            rows = await self.store.update(TRANSACTIONS_TABLE, _encode(changes), id=transaction_id)
            if not rows:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            transaction = decode_transaction(rows[0])
            self.transactions.replace(transaction)
        return transaction

    async def delete(self, transaction_id: str) -> None:
        async with self.lock:
            if not await self.store.delete(TRANSACTIONS_TABLE, id=transaction_id):
                raise NotFoundError(f"Transaction {transaction_id} not found")
            self.transactions.remove(transaction_id)

    async def upsert_for_reference(
        self,
        reference_number: str,
        category: str,
        type: str,
        amount,
        description: str,
        payment_method: str = "cash",
        date: Optional[datetime.datetime] = None,
    ) -> FinancialTransaction:
        """
        Books the income/expense generated by an order, at most once.

        `(reference_number, category, type)` is unique in the store, so this
        is one atomic insert-or-update and re-running it for the same order
        only refreshes the amount and description.

        Args:
            reference_number: The order number the entry belongs to.
            category: e.g. "purchases" or "sales".
            type: "income" or "expense".
            amount: The order total.
            description: Human readable description.
            payment_method: How the money moved.
            date: Booking date, defaults to now.

        Returns:
            The inserted or updated transaction.
        """
        if not reference_number:
            raise ValidationError("A reference number is required to book an order transaction")
        values = {
            "business_id": self.business_id,
            "reference_number": reference_number,
            "category": category,
            "type": type,
            "amount": to_decimal(amount),
            "description": description,
            "payment_method": payment_method or "cash",
            "date": date or _now(),
        }
        async with self.lock:
            transaction = decode_transaction(
                await self.store.upsert(TRANSACTIONS_TABLE, values, on_conflict=REFERENCE_KEY)
            )
            if self.get_by_id(transaction.id) is None:
                self.transactions.prepend(transaction)
            else:
                self.transactions.replace(transaction)
        logger.debug(f"Booked {type} {amount} for {reference_number} ({category})")
        return transaction

    async def delete_for_reference(self, reference_number: str, category: str) -> int:
        async with self.lock:
            deleted = await self.store.delete(
                TRANSACTIONS_TABLE, reference_number=reference_number, category=category
            )
            for transaction in self.find_for_reference(reference_number, category):
                self.transactions.remove(transaction.id)
        return deleted

    async def generate_financial_report(
        self, start: datetime.datetime, end: datetime.datetime, category: Optional[str] = None
    ) -> list[FinancialReportLine]:
        filters = {"business_id": self.business_id, "date__gte": start, "date__lte": end}
        if category:
            filters["category"] = category
        rows = await self.store.select(TRANSACTIONS_TABLE, order_by=("-date",), **filters)
        return [
            FinancialReportLine(
                id=t.id, date=t.date, type=t.type, category=t.category,
                amount=t.amount, description=t.description,
            )
            for t in map(decode_transaction, rows)
        ]

    def summarize(self, start: datetime.datetime, end: datetime.datetime) -> FinancialSummary:
        in_range = [t for t in self.transactions if start <= t.date <= end]
        income = sum((t.amount for t in in_range if t.type == "income"), Decimal("0"))
        expenses = sum((t.amount for t in in_range if t.type == "expense"), Decimal("0"))
        return FinancialSummary(
            income=income, expenses=expenses, balance=income - expenses, transaction_count=len(in_range)
        )
