"""API routes for suppliers."""
from fastapi import APIRouter, status, Depends, HTTPException
from typing import List, Annotated

from ...core.container import ERP, get_erp
from .schemas import Supplier, SupplierCreate, SupplierUpdate

router = APIRouter(
    prefix="/suppliers",
    tags=["Suppliers"],
    responses={404: {"description": "Not found"}},
)


@router.get("/", response_model=List[Supplier], summary="List suppliers")
async def list_suppliers(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.suppliers.list_suppliers()


@router.post("/", response_model=Supplier, status_code=status.HTTP_201_CREATED, summary="Create a supplier")
async def create_supplier(supplier_in: SupplierCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.suppliers.create(supplier_in)


@router.get("/{supplier_id}", response_model=Supplier, summary="Get a specific supplier")
async def get_supplier(supplier_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    supplier = erp.suppliers.get_by_id(supplier_id)
    if supplier is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Supplier {supplier_id} not found")
    return supplier


@router.put("/{supplier_id}", response_model=Supplier, summary="Update a supplier")
async def update_supplier(supplier_id: str, supplier_in: SupplierUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.suppliers.update(supplier_id, supplier_in)


@router.delete("/{supplier_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a supplier")
async def delete_supplier(supplier_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.suppliers.delete(supplier_id)
    return None
