"""Read-only product, supplier and reorder routes."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status

router = APIRouter(tags=["Reference data"])


def _get_reference(request: Request) -> Any:
    reference = getattr(request.app.state, "reference", None)
    if reference is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reference data is not available",
        )
    return reference


@router.get("/products")
def list_products(request: Request):
    return _get_reference(request).list_products()


@router.get("/products/{sku}")
def get_product(sku: str, request: Request):
    reference = _get_reference(request)
    product = reference.get_product(sku)
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return {"product": product, "price_history": reference.history_for_product(sku)}


@router.get("/suppliers")
def list_suppliers(request: Request, category: Optional[str] = Query(default=None)):
    reference = _get_reference(request)
    if category:
        return reference.suppliers_for_categories([category])
    return reference.list_suppliers()


@router.get("/suppliers/{supplier_id}")
def get_supplier(supplier_id: str, request: Request):
    supplier = _get_reference(request).get_supplier(supplier_id)
    if supplier is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Supplier not found")
    return supplier


@router.get("/reorders")
def reorder_list(request: Request):
    return _get_reference(request).reorder_list()
