"""RFQ lifecycle routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from api.models.negotiation import AwardRequest, CreateRFQRequest


router = APIRouter(prefix="/rfqs", tags=["RFQs"])


def _get_workflow(request: Request) -> Any:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="RFQ workflow is not available",
        )
    return workflow


@router.get("")
def list_rfqs(request: Request):
    return _get_workflow(request).list_rfqs()


@router.post("")
def create_rfq(payload: CreateRFQRequest, request: Request):
    workflow = _get_workflow(request)
    return workflow.create_rfq(
        [item.to_domain() for item in payload.items],
        payload.supplier_ids,
        quote_deadline=payload.quote_deadline,
        delivery_date=payload.delivery_date,
        notes=payload.notes,
    )


@router.get("/{rfq_id}")
def get_rfq(rfq_id: str, request: Request):
    return _get_workflow(request).get_rfq(rfq_id)


@router.get("/{rfq_id}/suppliers")
def supplier_statuses(rfq_id: str, request: Request):
    return _get_workflow(request).supplier_statuses(rfq_id)


@router.get("/{rfq_id}/quotes")
def rfq_quotes(rfq_id: str, request: Request):
    return _get_workflow(request).quotes_for_rfq(rfq_id)


@router.get("/{rfq_id}/compare")
def compare_quotes(rfq_id: str, request: Request):
    comparison = _get_workflow(request).compare_quotes(rfq_id)
    return {
        "rfq_id": comparison.rfq_id,
        "suppliers": comparison.suppliers,
        "items": comparison.items,
        "best_overall": comparison.best_overall,
    }


@router.post("/{rfq_id}/remind/{supplier_id}")
def send_reminder(rfq_id: str, supplier_id: str, request: Request):
    rfq = _get_workflow(request).send_reminder(rfq_id, supplier_id)
    return {"message": "Reminder sent", "rfq": rfq}


@router.post("/{rfq_id}/reject/{supplier_id}")
def reject_supplier(rfq_id: str, supplier_id: str, request: Request):
    dispatched = _get_workflow(request).reject_supplier(rfq_id, supplier_id)
    return {"message": "Rejection notice processed", "dispatched": dispatched}


@router.post("/{rfq_id}/cancel")
def cancel_rfq(rfq_id: str, request: Request):
    return _get_workflow(request).cancel_rfq(rfq_id)


@router.post("/{rfq_id}/award")
def award_rfq(rfq_id: str, payload: AwardRequest, request: Request):
    workflow = _get_workflow(request)
    items = [item.to_domain() for item in payload.items] if payload.items else None
    return workflow.award_rfq(
        rfq_id,
        payload.supplier_id,
        finalized_items=items,
        notify_others=payload.notify_others,
        send_purchase_order=payload.send_purchase_order,
        expected_delivery=payload.expected_delivery,
    )
