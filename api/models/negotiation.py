"""Pydantic request models for the negotiation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.negotiation import (
    ExtractedLineItem,
    OrderItem,
    OrderStatus,
    QuoteDraft,
    RFQItem,
    as_utc,
)


class _RequestModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class RFQItemIn(_RequestModel):
    sku: str = ""
    name: str = Field(..., min_length=1)
    qty: int = Field(..., gt=0)
    unit: str = "piece"
    specs: str = ""

    def to_domain(self) -> RFQItem:
        return RFQItem(
            sku=self.sku, name=self.name, qty=self.qty, unit=self.unit or "piece", specs=self.specs
        )


class CreateRFQRequest(_RequestModel):
    items: List[RFQItemIn] = Field(default_factory=list)
    supplier_ids: List[str] = Field(default_factory=list)
    quote_deadline: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: str = ""

    @field_validator("quote_deadline", "delivery_date")
    @classmethod
    def _timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class QuoteItemIn(_RequestModel):
    sku: str = ""
    name: str = Field(..., min_length=1)
    qty: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    total: Optional[float] = Field(default=None, ge=0)

    def to_domain(self) -> ExtractedLineItem:
        total = self.total if self.total is not None else round(self.qty * self.unit_price, 2)
        return ExtractedLineItem(
            name=self.name, qty=self.qty, unit_price=self.unit_price, total=total, sku=self.sku
        )


class CaptureQuoteRequest(_RequestModel):
    """A buyer-confirmed quote.

    ``subtotal`` is optional; when omitted it is the sum of the line totals.
    """

    rfq_id: str = Field(..., min_length=1)
    supplier_id: str = Field(..., min_length=1)
    items: List[QuoteItemIn] = Field(default_factory=list)
    subtotal: Optional[float] = Field(default=None, ge=0)
    delivery_cost: float = Field(default=0.0, ge=0)
    lead_time_days: int = Field(default=0, ge=0)
    payment_terms: str = ""
    validity: str = ""

    def to_draft(self) -> QuoteDraft:
        return QuoteDraft(
            items=tuple(item.to_domain() for item in self.items),
            subtotal=self.subtotal or 0.0,
            subtotal_stated=self.subtotal is not None,
            delivery_cost=self.delivery_cost,
            lead_time_days=self.lead_time_days,
            payment_terms=self.payment_terms,
            validity=self.validity,
        )


class ExtractQuoteRequest(_RequestModel):
    email_body: str = Field(..., min_length=1)
    rfq_id: Optional[str] = None


class CaptureReplyRequest(_RequestModel):
    rfq_id: str = Field(..., min_length=1)
    supplier_id: str = Field(..., min_length=1)
    email_body: str = Field(..., min_length=1)


class OrderItemIn(_RequestModel):
    sku: str = ""
    name: str = Field(..., min_length=1)
    qty: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    total: Optional[float] = Field(default=None, ge=0)

    def to_domain(self) -> OrderItem:
        total = self.total if self.total is not None else round(self.qty * self.unit_price, 2)
        return OrderItem(
            sku=self.sku, name=self.name, qty=self.qty, unit_price=self.unit_price, total=total
        )


class AwardRequest(_RequestModel):
    supplier_id: str = Field(..., min_length=1)
    items: Optional[List[OrderItemIn]] = None
    notify_others: bool = False
    send_purchase_order: bool = True
    expected_delivery: Optional[datetime] = None

    @field_validator("expected_delivery")
    @classmethod
    def _timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class DirectOrderRequest(_RequestModel):
    supplier_id: str = Field(..., min_length=1)
    items: List[OrderItemIn] = Field(..., min_length=1)
    total: Optional[float] = Field(default=None, ge=0)
    expected_delivery: Optional[datetime] = None
    payment_terms: Optional[str] = None
    send_email: bool = True

    @field_validator("expected_delivery")
    @classmethod
    def _timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class OrderStatusRequest(_RequestModel):
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


__all__ = [
    "RFQItemIn",
    "CreateRFQRequest",
    "QuoteItemIn",
    "CaptureQuoteRequest",
    "ExtractQuoteRequest",
    "CaptureReplyRequest",
    "OrderItemIn",
    "AwardRequest",
    "DirectOrderRequest",
    "OrderStatusRequest",
]
