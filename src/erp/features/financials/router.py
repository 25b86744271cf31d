"""API routes for financial transactions and the income/expense report."""
import datetime
from fastapi import APIRouter, status, Query, Depends, HTTPException
from typing import List, Optional, Annotated

from ...core.container import ERP, get_erp
from .schemas import (
    FinancialTransaction,
    FinancialTransactionCreate,
    FinancialTransactionUpdate,
    FinancialReportLine,
    FinancialSummary,
)

router = APIRouter(
    prefix="/financials",
    tags=["Financials"],
    responses={404: {"description": "Not found"}},
)


def _period(start: Optional[datetime.date], end: Optional[datetime.date]) -> tuple[datetime.datetime, datetime.datetime]:
    today = datetime.datetime.now(datetime.timezone.utc).date()
    start = start or today.replace(day=1)
    end = end or today
    return (
        datetime.datetime.combine(start, datetime.time.min, tzinfo=datetime.timezone.utc),
        datetime.datetime.combine(end, datetime.time.max, tzinfo=datetime.timezone.utc),
    )


@router.get("/transactions/", response_model=List[FinancialTransaction], summary="List financial transactions")
async def list_transactions(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.financials.list_transactions()


@router.post(
    "/transactions/",
    response_model=FinancialTransaction,
    status_code=status.HTTP_201_CREATED,
    summary="Record an income or expense",
)
async def create_transaction(transaction_in: FinancialTransactionCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.financials.create(transaction_in)


@router.get("/transactions/{transaction_id}", response_model=FinancialTransaction, summary="Get a transaction")
async def get_transaction(transaction_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    transaction = erp.financials.get_by_id(transaction_id)
    if transaction is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Transaction {transaction_id} not found")
    return transaction


@router.put("/transactions/{transaction_id}", response_model=FinancialTransaction, summary="Update a transaction")
async def update_transaction(
    transaction_id: str, transaction_in: FinancialTransactionUpdate, erp: Annotated[ERP, Depends(get_erp)]
):
    return await erp.financials.update(transaction_id, transaction_in)


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a transaction")
async def delete_transaction(transaction_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.financials.delete(transaction_id)
    return None


@router.get("/report", response_model=List[FinancialReportLine], summary="Transactions in a period")
async def get_financial_report(
    erp: Annotated[ERP, Depends(get_erp)],
    start_date: Optional[datetime.date] = Query(None, description="Defaults to the first day of this month"),
    end_date: Optional[datetime.date] = Query(None, description="Inclusive, defaults to today"),
    category: Optional[str] = Query(None),
):
    start, end = _period(start_date, end_date)
    return await erp.financials.generate_financial_report(start, end, category)


@router.get("/summary", response_model=FinancialSummary, summary="Income, expenses and balance for a period")
async def get_financial_summary(
    erp: Annotated[ERP, Depends(get_erp)],
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
):
    start, end = _period(start_date, end_date)
    return erp.financials.summarize(start, end)
