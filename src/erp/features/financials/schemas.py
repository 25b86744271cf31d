import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TransactionType = Literal["income", "expense"]
PaymentMethod = Literal["cash", "card", "bank", "internal"]

PAYMENT_METHODS = ("cash", "card", "bank", "internal")


class FinancialTransaction(BaseModel):
    id: str
    type: TransactionType
    amount: Decimal
    category: str
    description: str = ""
    date: datetime.datetime
    payment_method: str = "cash"
    reference_number: str = ""
    bill_images: list[str] = Field(default_factory=list)
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class FinancialTransactionCreate(BaseModel):
    type: TransactionType
    amount: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    date: Optional[datetime.datetime] = Field(None, description="Defaults to now")
    payment_method: PaymentMethod = "cash"
    reference_number: Optional[str] = Field(None, max_length=64)
    bill_images: list[str] = Field(default_factory=list)


class FinancialTransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    date: Optional[datetime.datetime] = None
    payment_method: Optional[PaymentMethod] = None
    reference_number: Optional[str] = Field(None, max_length=64)
    bill_images: Optional[list[str]] = None


class FinancialReportLine(BaseModel):
    id: str
    date: datetime.datetime
    type: TransactionType
    category: str
    amount: Decimal
    description: str = ""


class FinancialSummary(BaseModel):
    income: Decimal
    expenses: Decimal
    balance: Decimal
    transaction_count: int
