"""
Reports Service Module

Pure functions assembling report views from entities already loaded by the
repositories. Nothing here touches the store; every function can be called
again whenever one of its input collections changes.
"""

import datetime
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, List, Optional

from ..financials.schemas import FinancialTransaction
from ..inventory.schemas import InventoryAdjustment
from ..purchasing.schemas import PurchaseOrder
from ..sales.schemas import WALK_IN_CUSTOMER, SalesOrder
from .schemas import (
    DailyTotal, FeedEntry, FeedFilter, FeedSummary, ItemSales, RecentOrder,
    SalesReport, SalesSummary, SalesTypeShare, TrendPoint
)

logger = logging.getLogger(__name__)

TOP_ITEMS_LIMIT = 10
RECENT_ORDERS_LIMIT = 10
TREND_BUCKETS = 6

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)

SALES_TYPE_LABELS = {
    "website": "Website Sales",
    "manual": "Manual Sales",
    "pos": "POS Sales",
    "returns": "Returns",
}


def _when(value: Optional[datetime.datetime]) -> datetime.datetime:
    # Naive timestamps are stored in UTC.
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def _items_summary(lines: Iterable[tuple[str, Decimal]]) -> str:
    return ", ".join(f"{name or 'Unknown'} ({quantity})" for name, quantity in lines)


def build_transaction_feed(
    transactions: Iterable[FinancialTransaction],
    purchase_orders: Iterable[PurchaseOrder],
    sales_orders: Iterable[SalesOrder],
    adjustments: Iterable[InventoryAdjustment],
) -> List[FeedEntry]:
    """
    Merges the four transaction streams into one feed, newest first.

    Purchase orders are booked under "Procurement", sales orders under
    "Sales" and stock adjustments under "Inventory" with a zero amount since
    they carry no direct financial impact. Ids are prefixed with their
    source so entries from different streams never collide.

    Args:
        transactions: Financial transactions.
        purchase_orders: Purchase orders with their lines.
        sales_orders: Sales orders with their lines.
        adjustments: Inventory adjustments.

    Returns:
        List[FeedEntry]: The merged entries sorted by date, newest first.
    """
    entries: List[FeedEntry] = []

    for t in transactions:
        entries.append(FeedEntry(
            id=t.id, source="financial",
            display_type="Income" if t.type == "income" else "Expense",
            display_id=t.reference_number or t.id,
            date=_when(t.date), description=t.description,
            amount=t.amount, category=t.category or "Uncategorized",
        ))

    for po in purchase_orders:
        supplier_name = po.supplier.name if po.supplier else "Unknown supplier"
        entries.append(FeedEntry(
            id=f"po-{po.id}", source="purchase", display_type="Purchase Order",
            display_id=po.order_number, date=_when(po.created_at),
            description=f"Purchase from {supplier_name}",
            amount=po.total_amount, category="Procurement", status=po.status,
            item_summary=_items_summary((line.name, line.quantity) for line in po.items),
        ))

    for so in sales_orders:
        entries.append(FeedEntry(
            id=f"so-{so.id}", source="sales", display_type="Sales Order",
            display_id=so.order_number, date=_when(so.order_date or so.created_at),
            description=f"Sale to customer {so.display_customer_name}",
            amount=so.total_amount, category="Sales", status=so.status,
            item_summary=_items_summary((line.name, line.quantity) for line in so.items),
        ))

    for adj in adjustments:
        item_name = adj.item_name or "Unknown Item"
        moved = abs(adj.new_quantity - adj.previous_quantity)
        entries.append(FeedEntry(
            id=f"adj-{adj.id}", source="adjustment", display_type="Inventory Adjustment",
            display_id=adj.id[:8], date=_when(adj.adjustment_date),
            description=f"{adj.reason} - {item_name} ({adj.previous_quantity} -> {adj.new_quantity})",
            amount=Decimal("0"), category="Inventory",
            item_summary=f"{item_name} ({moved})",
        ))

    entries.sort(key=lambda e: e.date, reverse=True)
    return entries


def filter_feed(entries: Iterable[FeedEntry], feed_filter: FeedFilter) -> List[FeedEntry]:
    """Applies the search text, source, category and inclusive date range of `feed_filter`."""
    needle = (feed_filter.search or "").strip().lower()

    def matches(entry: FeedEntry) -> bool:
        if needle:
            haystack = (entry.description, entry.category, entry.display_id, entry.display_type, entry.item_summary)
            if not any(needle in field.lower() for field in haystack):
                return False
        if feed_filter.source and entry.source != feed_filter.source:
            return False
        if feed_filter.category and entry.category != feed_filter.category:
            return False
        day = entry.date.date()
        if feed_filter.date_from and day < feed_filter.date_from:
            return False
        if feed_filter.date_to and day > feed_filter.date_to:
            return False
        return True

    return [e for e in entries if matches(e)]


def _is_income(entry: FeedEntry) -> bool:
    return entry.source == "sales" or (entry.source == "financial" and entry.display_type == "Income")


def _is_expense(entry: FeedEntry) -> bool:
    return entry.source == "purchase" or (entry.source == "financial" and entry.display_type == "Expense")


def summarize_feed(entries: Iterable[FeedEntry]) -> FeedSummary:
    """
    Aggregates a feed: income and expense totals, totals per source and per day.

    Sales orders count as income and purchase orders as expenses next to the
    financial transactions of the matching type; adjustments only count
    towards the entry count.
    """
    entries = list(entries)
    by_source: dict[str, Decimal] = defaultdict(Decimal)
    by_day: dict[datetime.date, DailyTotal] = {}
    income = expenses = Decimal("0")

    for entry in entries:
        by_source[entry.source] += entry.amount
        day = by_day.setdefault(entry.date.date(), DailyTotal(date=entry.date.date()))
        if _is_income(entry):
            income += entry.amount
            day.income += entry.amount
        elif _is_expense(entry):
            expenses += entry.amount
            day.expenses += entry.amount

    return FeedSummary(
        entry_count=len(entries),
        total_income=income,
        total_expenses=expenses,
        net=income - expenses,
        totals_by_source=dict(by_source),
        daily_totals=[by_day[d] for d in sorted(by_day)],
        categories=sorted({e.category for e in entries}),
    )


def sales_type_of(order: SalesOrder) -> str:
    """Sales channel of an order; cancelled orders count as returns."""
    if order.status == "cancelled":
        return "returns"
    source = order.order_source or "manual"
    if source in ("pos", "api"):
        return "pos"
    if source == "website":
        return "website"
    return "manual"


def _trend_keys(now: datetime.datetime, period: str) -> List[str]:
    keys = []
    for back in range(TREND_BUCKETS - 1, -1, -1):
        if period == "year":
            keys.append(f"{now.year - back:04d}")
        else:
            year, month = now.year, now.month - back
            while month <= 0:
                month += 12
                year -= 1
            keys.append(f"{year:04d}-{month:02d}")
    return keys


def build_sales_report(
    orders: Iterable[SalesOrder],
    status: Optional[str] = None,
    sales_type: Optional[str] = None,
    period: str = "month",
    now: Optional[datetime.datetime] = None,
) -> SalesReport:
    """
    Generates the sales report for the orders matching `status` and `sales_type`.

    Args:
        orders: Sales orders with their lines.
        status: Only include orders in this status.
        sales_type: Only include orders of this channel (website, manual, pos, returns).
        period: "month" for the last 6 months, "year" for the last 6 years.
        now: Reference time for the trend buckets, defaults to the current UTC time.

    Returns:
        SalesReport: Summary totals, sales by type (non-zero types only), the
        top 10 items by revenue, the 10 most recent orders and the trend.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    selected = [
        o for o in orders
        if (status is None or o.status == status) and (sales_type is None or sales_type_of(o) == sales_type)
    ]

    totals: dict[str, Decimal] = defaultdict(Decimal)
    counts: dict[str, int] = defaultdict(int)
    for order in selected:
        kind = sales_type_of(order)
        totals[kind] += order.total_amount
        counts[kind] += 1

    total_sales = sum((o.total_amount for o in selected), Decimal("0"))
    summary = SalesSummary(
        total_sales=total_sales,
        total_orders=len(selected),
        average_order_value=total_sales / len(selected) if selected else Decimal("0"),
        website_sales=totals["website"],
        manual_sales=totals["manual"],
        pos_sales=totals["pos"],
        returned_sales=totals["returns"],
    )
    by_type = [
        SalesTypeShare(name=label, value=totals[kind], count=counts[kind])
        for kind, label in SALES_TYPE_LABELS.items()
        if totals[kind] > 0
    ]

    items: dict[str, dict] = {}
    for order in selected:
        for line in order.items:
            name = line.name or "Unknown Item"
            stats = items.setdefault(name, {"quantity": Decimal("0"), "revenue": Decimal("0"), "orders": 0})
            stats["quantity"] += line.quantity
            stats["revenue"] += line.quantity * line.unit_price
            stats["orders"] += 1
    top_items = sorted(
        (
            ItemSales(
                name=name, quantity=s["quantity"], revenue=s["revenue"], orders=s["orders"],
                average_price=s["revenue"] / s["quantity"] if s["quantity"] else Decimal("0"),
            )
            for name, s in items.items()
        ),
        key=lambda i: i.revenue, reverse=True,
    )[:TOP_ITEMS_LIMIT]

    recent = sorted(selected, key=lambda o: _when(o.order_date or o.created_at), reverse=True)[:RECENT_ORDERS_LIMIT]
    recent_orders = [
        RecentOrder(
            id=o.id, order_number=o.order_number,
            customer_name=o.display_customer_name or WALK_IN_CUSTOMER,
            order_date=o.order_date, status=o.status,
            sales_type=SALES_TYPE_LABELS[sales_type_of(o)], total_amount=o.total_amount,
        )
        for o in recent
    ]

    buckets = {key: Decimal("0") for key in _trend_keys(now, period)}
    for order in selected:
        when = _when(order.order_date or order.created_at)
        key = f"{when.year:04d}" if period == "year" else f"{when.year:04d}-{when.month:02d}"
        # Orders older than the window are left out of the trend.
        if key in buckets:
            buckets[key] += order.total_amount
    trend = [TrendPoint(period=key, sales=value) for key, value in buckets.items()]

    logger.debug(f"Sales report over {len(selected)} orders ({period})")
    return SalesReport(
        summary=summary, sales_by_type=by_type, top_items=top_items,
        recent_orders=recent_orders, trend=trend, period=period,
    )
