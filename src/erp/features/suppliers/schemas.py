import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Supplier(BaseModel):
    id: str
    name: str
    telephone: str = ""
    address: str = ""
    payment_terms: str = ""
    is_active: bool = True
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class SupplierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the supplier")
    telephone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    payment_terms: Optional[str] = Field(None, max_length=100, description="e.g. 'Net 30'")


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    telephone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    payment_terms: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
