"""Purchase order routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from api.models.negotiation import DirectOrderRequest, OrderStatusRequest


router = APIRouter(prefix="/orders", tags=["Orders"])


def _get_order_service(request: Request) -> Any:
    service = getattr(request.app.state, "order_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order service is not available",
        )
    return service


@router.get("")
def list_orders(request: Request):
    return _get_order_service(request).list_orders()


@router.post("")
def create_direct_order(payload: DirectOrderRequest, request: Request):
    return _get_order_service(request).create_direct_order(
        payload.supplier_id,
        [item.to_domain() for item in payload.items],
        total=payload.total,
        expected_delivery=payload.expected_delivery,
        payment_terms=payload.payment_terms,
        send_email=payload.send_email,
    )


@router.get("/{order_id}")
def get_order(order_id: str, request: Request):
    return _get_order_service(request).get_order(order_id)


@router.post("/{order_id}/followup")
def send_follow_up(order_id: str, request: Request):
    dispatched = _get_order_service(request).send_follow_up(order_id)
    return {"message": "Follow-up processed", "dispatched": dispatched}


@router.post("/{order_id}/status")
def advance_status(order_id: str, payload: OrderStatusRequest, request: Request):
    return _get_order_service(request).advance_status(order_id, payload.status)
