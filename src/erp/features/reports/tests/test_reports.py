import datetime
from decimal import Decimal

import httpx
import pytest
from fastapi import status

from erp.core.container import ERP
from erp.features.financials.schemas import FinancialTransaction
from erp.features.inventory.schemas import InventoryAdjustment, InventoryItem
from erp.features.purchasing.schemas import PurchaseItem, PurchaseOrder
from erp.features.reports.schemas import FeedFilter
from erp.features.reports.service import (
    build_sales_report,
    build_transaction_feed,
    filter_feed,
    sales_type_of,
    summarize_feed,
)
from erp.features.sales.schemas import CustomerCreate, SaleItem, SaleLineInput, SalesOrder, SalesOrderCreate
from erp.features.suppliers.schemas import Supplier

UTC = datetime.timezone.utc


def at(month: int, day: int, year: int = 2024) -> datetime.datetime:
    return datetime.datetime(year, month, day, 10, tzinfo=UTC)


def sale(order_id: str, total: str, when: datetime.datetime, source: str = "manual", status: str = "completed",
         lines: tuple = (), customer_name: str = "") -> SalesOrder:
    return SalesOrder(
        id=order_id, order_number=f"1000000{order_id[-1]}", status=status, order_source=source,
        order_date=when, total_amount=Decimal(total), customer_name=customer_name,
        items=[
            SaleItem(id=f"{order_id}-{i}", product_id="p", name=name, quantity=Decimal(qty),
                     unit_price=Decimal(price), total_price=Decimal(qty) * Decimal(price))
            for i, (name, qty, price) in enumerate(lines)
        ],
    )


@pytest.fixture
def streams():
    transactions = [
        FinancialTransaction(id="ft1", type="expense", amount=Decimal("40"), category="utilities",
                             description="Electricity", date=at(5, 2)),
        FinancialTransaction(id="ft2", type="income", amount=Decimal("15"), category="",
                             description="Workshop fee", date=datetime.datetime(2024, 5, 3, 9)),
    ]
    purchases = [
        PurchaseOrder(
            id="po1", order_number="PO-2024-123456", supplier_id="s1",
            supplier=Supplier(id="s1", name="Acme Timber"), total_amount=Decimal("300"), created_at=at(5, 4),
            items=[PurchaseItem(id="l1", name="Oak Blank", quantity=Decimal("10"), unit_cost=Decimal("30"),
                                total_cost=Decimal("300"))],
        ),
    ]
    sales = [
        sale("so1", "75", at(5, 5), customer_name="Dana Reyes", lines=(("Oak Bowl", "3", "25"),)),
        sale("so2", "20", at(5, 5), source="pos", lines=(("Beech Spoon", "2", "10"),)),
    ]
    adjustments = [
        InventoryAdjustment(id="2a8Hq3bUFUrQ6Zr0PqVJSyvOZyJ", item_id="i1", previous_quantity=Decimal("10"),
                            new_quantity=Decimal("7"), reason="damaged", adjustment_date=at(5, 1),
                            item_name="Oak Bowl"),
    ]
    return transactions, purchases, sales, adjustments


# --- transaction feed ---
def test_feed_merges_all_sources_newest_first(streams):
    feed = build_transaction_feed(*streams)

    assert [e.id for e in feed] == ["so-so1", "so-so2", "po-po1", "ft2", "ft1", "adj-2a8Hq3bUFUrQ6Zr0PqVJSyvOZyJ"]
    by_id = {e.id: e for e in feed}
    assert by_id["po-po1"].description == "Purchase from Acme Timber"
    assert by_id["po-po1"].category == "Procurement"
    assert by_id["po-po1"].item_summary == "Oak Blank (10)"
    assert by_id["so-so1"].description == "Sale to customer Dana Reyes"
    assert by_id["so-so2"].description == "Sale to customer Walk-in Customer"
    assert by_id["ft2"].category == "Uncategorized"
    assert by_id["ft2"].date.tzinfo is not None

    adjustment = by_id["adj-2a8Hq3bUFUrQ6Zr0PqVJSyvOZyJ"]
    assert adjustment.amount == Decimal("0")
    assert adjustment.category == "Inventory"
    assert adjustment.display_id == "2a8Hq3bU"
    assert adjustment.description == "damaged - Oak Bowl (10 -> 7)"


def test_feed_ids_are_unique_across_sources():
    shared = "same-id"
    feed = build_transaction_feed(
        [FinancialTransaction(id=shared, type="income", amount=Decimal("1"), category="x", date=at(1, 1))],
        [PurchaseOrder(id=shared, order_number="PO-1", supplier_id="s")],
        [sale(shared, "1", at(1, 1))],
        [InventoryAdjustment(id=shared, item_id="i", previous_quantity=Decimal("0"), new_quantity=Decimal("1"),
                             reason="manual")],
    )
    assert len({e.id for e in feed}) == 4


@pytest.mark.parametrize(
    "feed_filter, expected",
    [
        (FeedFilter(search="OAK"), ["so-so1", "po-po1", "adj-2a8Hq3bUFUrQ6Zr0PqVJSyvOZyJ"]),
        (FeedFilter(search="po-2024"), ["po-po1"]),
        (FeedFilter(source="financial"), ["ft2", "ft1"]),
        (FeedFilter(category="Sales"), ["so-so1", "so-so2"]),
        (FeedFilter(date_from=datetime.date(2024, 5, 2), date_to=datetime.date(2024, 5, 3)), ["ft2", "ft1"]),
        (FeedFilter(search="spoon", source="purchase"), []),
    ],
)
def test_filter_feed(streams, feed_filter, expected):
    assert [e.id for e in filter_feed(build_transaction_feed(*streams), feed_filter)] == expected


def test_summarize_feed(streams):
    summary = summarize_feed(build_transaction_feed(*streams))

    assert summary.entry_count == 6
    assert summary.total_income == Decimal("110")
    assert summary.total_expenses == Decimal("340")
    assert summary.net == Decimal("-230")
    assert summary.totals_by_source["adjustment"] == Decimal("0")
    assert summary.totals_by_source["purchase"] == Decimal("300")
    assert [d.date for d in summary.daily_totals] == [datetime.date(2024, 5, day) for day in (1, 2, 3, 4, 5)]
    assert summary.daily_totals[-1].income == Decimal("95")
    assert summary.categories == ["Inventory", "Procurement", "Sales", "Uncategorized", "utilities"]


# --- sales report ---
@pytest.mark.parametrize(
    "source, order_status, expected",
    [
        ("website", "completed", "website"),
        ("pos", "completed", "pos"),
        ("api", "pending", "pos"),
        ("manual", "Delivered", "manual"),
        ("telephone", "completed", "manual"),
        ("website", "cancelled", "returns"),
    ],
)
def test_sales_type_of(source, order_status, expected):
    assert sales_type_of(sale("so9", "1", at(1, 1), source=source, status=order_status)) == expected


def test_sales_report():
    orders = [
        sale("so1", "75", at(5, 20), lines=(("Oak Bowl", "3", "25"),)),
        sale("so2", "40", at(4, 2), source="website", lines=(("Oak Bowl", "1", "25"), ("Beech Spoon", "3", "5"))),
        sale("so3", "30", at(3, 9), source="pos", lines=(("Beech Spoon", "6", "5"),)),
        sale("so4", "10", at(5, 1), status="cancelled", lines=(("Ash Board", "1", "10"),)),
        sale("so5", "500", at(5, 1, year=2020), lines=(("Walnut Table", "1", "500"),)),
    ]

    report = build_sales_report(orders, now=at(5, 31))

    assert report.summary.total_orders == 5
    assert report.summary.total_sales == Decimal("655")
    assert report.summary.average_order_value == Decimal("131")
    assert report.summary.manual_sales == Decimal("575")
    assert report.summary.returned_sales == Decimal("10")
    assert [(s.name, s.count) for s in report.sales_by_type] == [
        ("Website Sales", 1), ("Manual Sales", 2), ("POS Sales", 1), ("Returns", 1),
    ]
    assert [i.name for i in report.top_items] == ["Walnut Table", "Oak Bowl", "Beech Spoon", "Ash Board"]
    oak = report.top_items[1]
    assert (oak.quantity, oak.revenue, oak.orders, oak.average_price) == (Decimal("4"), Decimal("100"), 2, Decimal("25"))
    assert [o.id for o in report.recent_orders][:2] == ["so1", "so4"]
    assert report.recent_orders[0].customer_name == "Walk-in Customer"
    assert report.recent_orders[0].sales_type == "Manual Sales"

    assert [p.period for p in report.trend] == ["2023-12", "2024-01", "2024-02", "2024-03", "2024-04", "2024-05"]
    assert [p.sales for p in report.trend][-3:] == [Decimal("30"), Decimal("40"), Decimal("85")]


def test_sales_report_filters_and_yearly_trend():
    orders = [
        sale("so1", "75", at(5, 20)),
        sale("so2", "40", at(4, 2, year=2022), source="website"),
        sale("so3", "30", at(3, 9), source="pos", status="pending"),
    ]

    websites = build_sales_report(orders, sales_type="website", period="year", now=at(5, 31))
    assert websites.summary.total_orders == 1
    assert [p.period for p in websites.trend] == ["2019", "2020", "2021", "2022", "2023", "2024"]
    assert websites.trend[3].sales == Decimal("40")
    assert [s.name for s in websites.sales_by_type] == ["Website Sales"]

    completed = build_sales_report(orders, status="completed", now=at(5, 31))
    assert completed.summary.total_sales == Decimal("115")

    empty = build_sales_report([], now=at(5, 31))
    assert empty.summary.average_order_value == Decimal("0")
    assert empty.sales_by_type == []
    assert all(p.sales == 0 for p in empty.trend)


# --- API ---
@pytest.mark.asyncio
async def test_report_endpoints(client: httpx.AsyncClient, erp: ERP, widget: InventoryItem):
    customer = await erp.customers.create(CustomerCreate(name="Dana Reyes"))
    order = await erp.sales.create(
        SalesOrderCreate(customer_id=customer.id, items=[SaleLineInput(item_id=widget.id, quantity=Decimal("2"))])
    )
    await erp.inventory.adjust_stock(widget.id, -1, "damaged")

    response = await client.get("/api/v1/reports/transactions", params={"search": "dana"})
    assert response.status_code == status.HTTP_200_OK
    assert [e["id"] for e in response.json()] == [f"so-{order.id}"]

    response = await client.get("/api/v1/reports/transactions/summary", params={"source": "adjustment"})
    assert response.json()["entry_count"] == 1

    response = await client.get("/api/v1/reports/sales", params={"period": "year"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["summary"]["total_orders"] == 1
    assert Decimal(data["summary"]["manual_sales"]) == Decimal("50")
    assert len(data["trend"]) == 6

    response = await client.get("/api/v1/reports/sales", params={"sales_type": "telephone"})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
