"""Quote extraction and capture routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from api.models.negotiation import (
    CaptureQuoteRequest,
    CaptureReplyRequest,
    ExtractQuoteRequest,
)


router = APIRouter(prefix="/quotes", tags=["Quotes"])


def _get_workflow(request: Request) -> Any:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="RFQ workflow is not available",
        )
    return workflow


@router.post("/extract")
def extract_quote(payload: ExtractQuoteRequest, request: Request):
    """Preview the structured quote in an email body without saving it."""

    return _get_workflow(request).extract_reply(payload.email_body, rfq_id=payload.rfq_id)


@router.post("/capture")
def capture_quote(payload: CaptureQuoteRequest, request: Request):
    return _get_workflow(request).capture_quote(
        payload.rfq_id, payload.supplier_id, payload.to_draft()
    )


@router.post("/capture-reply")
def capture_reply(payload: CaptureReplyRequest, request: Request):
    return _get_workflow(request).capture_reply(
        payload.rfq_id, payload.supplier_id, payload.email_body
    )
