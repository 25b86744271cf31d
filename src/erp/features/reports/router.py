import datetime
import logging
from fastapi import APIRouter, Depends, Query
from typing import Annotated, List, Optional

from ...core.container import ERP, get_erp
from .schemas import FeedEntry, FeedFilter, FeedSummary, ReportPeriod, SalesReport, SalesType
from . import service as report_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
    responses={404: {"description": "Not found"}},
)


def _feed(erp: ERP, feed_filter: FeedFilter) -> List[FeedEntry]:
    entries = report_service.build_transaction_feed(
        erp.financials.list_transactions(),
        erp.purchasing.list_orders(),
        erp.sales.list_orders(),
        erp.inventory.adjustments.snapshot(),
    )
    return report_service.filter_feed(entries, feed_filter)


@router.get("/transactions", response_model=List[FeedEntry])
async def get_transaction_feed(
    erp: Annotated[ERP, Depends(get_erp)],
    feed_filter: FeedFilter = Depends()  # Injects query params from FeedFilter
):
    return _feed(erp, feed_filter)


@router.get("/transactions/summary", response_model=FeedSummary)
async def get_transaction_feed_summary(
    erp: Annotated[ERP, Depends(get_erp)],
    feed_filter: FeedFilter = Depends()
):
    return report_service.summarize_feed(_feed(erp, feed_filter))


@router.get("/sales", response_model=SalesReport)
async def get_sales_report(
    erp: Annotated[ERP, Depends(get_erp)],
    status: Optional[str] = Query(None, description="Only orders in this status"),
    sales_type: Optional[SalesType] = Query(None, description="website, manual, pos or returns"),
    period: ReportPeriod = Query("month", description="Trend over the last 6 months or years"),
):
    return report_service.build_sales_report(
        erp.sales.list_orders(), status=status, sales_type=sales_type, period=period,
        now=datetime.datetime.now(datetime.timezone.utc),
    )
