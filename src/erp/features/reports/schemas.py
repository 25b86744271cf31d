"""Report schemas

Pydantic models returned by the reporting views:

1. Transaction feed entries and the filter applied to them
2. Feed summary (totals by source, income/expense, by day)
3. Sales report (summary, sales by type, top items, recent orders, trend)"""
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from decimal import Decimal
import datetime

FeedSource = Literal["financial", "purchase", "sales", "adjustment"]
SalesType = Literal["website", "manual", "pos", "returns"]
ReportPeriod = Literal["month", "year"]


# 1. Transaction feed
class FeedEntry(BaseModel):
    id: str = Field(..., description="Source-prefixed id, unique across all sources")
    source: FeedSource
    display_type: str
    display_id: str
    date: datetime.datetime
    description: str = ""
    amount: Decimal = Decimal("0")
    category: str = "Uncategorized"
    status: Optional[str] = None
    item_summary: str = ""


class FeedFilter(BaseModel):
    search: Optional[str] = Field(None, description="Case-insensitive text matched against description, category, id and items")
    source: Optional[FeedSource] = None
    category: Optional[str] = None
    date_from: Optional[datetime.date] = Field(None, description="Inclusive lower bound (YYYY-MM-DD)")
    date_to: Optional[datetime.date] = Field(None, description="Inclusive upper bound (YYYY-MM-DD)")


# 2. Feed summary
class DailyTotal(BaseModel):
    date: datetime.date
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")


class FeedSummary(BaseModel):
    entry_count: int
    total_income: Decimal
    total_expenses: Decimal
    net: Decimal
    totals_by_source: dict[str, Decimal]
    daily_totals: List[DailyTotal]
    categories: List[str]


# 3. Sales report
class SalesSummary(BaseModel):
    total_sales: Decimal
    total_orders: int
    average_order_value: Decimal
    website_sales: Decimal
    manual_sales: Decimal
    pos_sales: Decimal
    returned_sales: Decimal


class SalesTypeShare(BaseModel):
    name: str
    value: Decimal
    count: int


class ItemSales(BaseModel):
    name: str
    quantity: Decimal
    revenue: Decimal
    orders: int
    average_price: Decimal


class RecentOrder(BaseModel):
    id: str
    order_number: str
    customer_name: str
    order_date: Optional[datetime.datetime] = None
    status: str
    sales_type: str
    total_amount: Decimal


class TrendPoint(BaseModel):
    period: str = Field(..., description="YYYY-MM for monthly, YYYY for yearly buckets")
    sales: Decimal


class SalesReport(BaseModel):
    summary: SalesSummary
    sales_by_type: List[SalesTypeShare]
    top_items: List[ItemSales]
    recent_orders: List[RecentOrder]
    trend: List[TrendPoint]
    period: ReportPeriod
