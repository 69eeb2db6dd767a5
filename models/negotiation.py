"""Domain records for RFQs, supplier responses, quotes, orders and simulation.

Every record is an immutable snapshot.  The negotiation store is the only
writer and produces a new record for each mutation with
:func:`dataclasses.replace`, so readers can hold on to a value without
worrying about it changing underneath them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple


class RFQStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SupplierResponseStatus(str, Enum):
    PENDING = "pending"
    RESPONDED = "responded"
    # Display-only; derived by ``effective_status`` and never stored.
    NO_RESPONSE = "no-response"


class OrderStatus(str, Enum):
    SENT = "sent"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


ORDER_STATUS_SEQUENCE: Tuple[OrderStatus, ...] = (
    OrderStatus.SENT,
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


class SimulationTaskStatus(str, Enum):
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a naive datetime as UTC; aware values are returned unchanged."""

    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RFQItem:
    sku: str
    name: str
    qty: int
    unit: str = "piece"
    specs: str = ""


@dataclass(frozen=True)
class SupplierStatus:
    supplier_id: str
    status: SupplierResponseStatus
    sent_at: datetime
    responded_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None


@dataclass(frozen=True)
class RFQ:
    id: str
    reference_number: str
    items: Tuple[RFQItem, ...]
    suppliers: Tuple[SupplierStatus, ...]
    status: RFQStatus
    created_at: datetime
    quote_deadline: datetime
    delivery_date: datetime
    notes: str = ""

    @property
    def supplier_ids(self) -> Tuple[str, ...]:
        return tuple(entry.supplier_id for entry in self.suppliers)

    def supplier_status(self, supplier_id: str) -> Optional[SupplierStatus]:
        for entry in self.suppliers:
            if entry.supplier_id == supplier_id:
                return entry
        return None

    def with_supplier_status(self, updated: SupplierStatus) -> "RFQ":
        suppliers = tuple(
            updated if entry.supplier_id == updated.supplier_id else entry
            for entry in self.suppliers
        )
        return replace(self, suppliers=suppliers)


@dataclass(frozen=True)
class QuoteLineItem:
    sku: str
    name: str
    qty: int
    unit_price: float
    total: float


@dataclass(frozen=True)
class Quote:
    id: str
    rfq_id: str
    supplier_id: str
    supplier_name: str
    items: Tuple[QuoteLineItem, ...]
    subtotal: float
    delivery_cost: float
    landed_total: float
    lead_time_days: int
    payment_terms: str
    validity: str
    captured_at: datetime
    response_time_hours: float


@dataclass(frozen=True)
class OrderItem:
    sku: str
    name: str
    qty: int
    unit_price: float
    total: float


@dataclass(frozen=True)
class Order:
    id: str
    po_number: str
    supplier_id: str
    supplier_name: str
    items: Tuple[OrderItem, ...]
    total: float
    status: OrderStatus
    created_at: datetime
    expected_delivery: datetime
    payment_terms: str
    rfq_id: Optional[str] = None


@dataclass(frozen=True)
class SimulationTask:
    """Bookkeeping for one scheduled synthetic reply.

    Transitions only leave ``scheduled``; ``sent`` and ``failed`` are terminal.
    """

    rfq_id: str
    supplier_id: str
    scheduled_for: datetime
    status: SimulationTaskStatus = SimulationTaskStatus.SCHEDULED
    sent_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.rfq_id, self.supplier_id)

    def mark_sent(self, at: datetime) -> "SimulationTask":
        self._require_scheduled()
        return replace(self, status=SimulationTaskStatus.SENT, sent_at=at)

    def mark_failed(self, reason: str) -> "SimulationTask":
        self._require_scheduled()
        return replace(self, status=SimulationTaskStatus.FAILED, error=reason)

    def _require_scheduled(self) -> None:
        if self.status is not SimulationTaskStatus.SCHEDULED:
            raise ValueError(
                f"Simulation task {self.rfq_id}/{self.supplier_id} already {self.status.value}"
            )


@dataclass(frozen=True)
class ExtractedLineItem:
    name: str
    qty: int
    unit_price: float
    total: float
    sku: str = ""


@dataclass(frozen=True)
class QuoteDraft:
    """Structured quote as extracted from a reply or entered by hand.

    ``subtotal_stated`` marks a subtotal read from the document itself; when
    it is false the store recomputes the subtotal from the line totals.
    """

    items: Tuple[ExtractedLineItem, ...] = field(default_factory=tuple)
    subtotal: float = 0.0
    delivery_cost: float = 0.0
    lead_time_days: int = 0
    payment_terms: str = ""
    validity: str = ""
    subtotal_stated: bool = False


def effective_status(
    rfq: RFQ, supplier_status: SupplierStatus, now: Optional[datetime] = None
) -> SupplierResponseStatus:
    """Return the status to display for ``supplier_status``.

    ``no-response`` is derived: a stored ``pending`` read after the RFQ quote
    deadline.  Every caller that needs a supplier's visible state goes through
    this function.
    """

    moment = as_utc(now) or utc_now()
    if (
        supplier_status.status is SupplierResponseStatus.PENDING
        and moment > rfq.quote_deadline
    ):
        return SupplierResponseStatus.NO_RESPONSE
    return supplier_status.status


__all__ = [
    "RFQStatus",
    "SupplierResponseStatus",
    "OrderStatus",
    "ORDER_STATUS_SEQUENCE",
    "SimulationTaskStatus",
    "RFQItem",
    "SupplierStatus",
    "RFQ",
    "QuoteLineItem",
    "Quote",
    "OrderItem",
    "Order",
    "SimulationTask",
    "ExtractedLineItem",
    "QuoteDraft",
    "effective_status",
    "utc_now",
    "as_utc",
]
