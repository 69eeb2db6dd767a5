"""In-memory store for RFQs, quotes, orders and simulation bookkeeping.

The store is the single writer for negotiation state.  Every mutation runs
under one re-entrant lock and replaces the affected record with a new
immutable snapshot, so concurrent readers (HTTP handlers, scheduler workers)
never see a half-applied update.  Nothing is persisted; reference counters
start from the configured seeds each time the process starts.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from models.negotiation import (
    ORDER_STATUS_SEQUENCE,
    RFQ,
    Order,
    OrderItem,
    OrderStatus,
    Quote,
    QuoteDraft,
    QuoteLineItem,
    RFQItem,
    RFQStatus,
    SimulationTask,
    SimulationTaskStatus,
    SupplierResponseStatus,
    SupplierStatus,
    as_utc,
    utc_now,
)
from utils.exceptions import NotFoundError, PreconditionFailedError, ValidationError
from utils.rfq import format_po_reference, format_rfq_reference, generate_identifier

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class NegotiationStore:
    def __init__(self, settings=None, *, clock: Optional[Clock] = None) -> None:
        self.settings = settings
        self._clock: Clock = clock or utc_now
        self._lock = threading.RLock()
        self._rfqs: Dict[str, RFQ] = {}
        self._quotes: Dict[str, Quote] = {}
        self._orders: Dict[str, Order] = {}
        # Every scheduling attempt per (rfq_id, supplier_id), oldest first
        self._simulation_tasks: Dict[tuple, List[SimulationTask]] = {}
        self._rfq_counter = int(getattr(settings, "rfq_number_seed", 91))
        self._po_counter = int(getattr(settings, "po_number_seed", 1000))
        self._quote_deadline_days = int(
            getattr(settings, "default_quote_deadline_days", 2)
        )
        self._delivery_days = int(getattr(settings, "default_delivery_days", 7))

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Reference numbers
    # ------------------------------------------------------------------
    def next_rfq_number(self) -> str:
        with self._lock:
            self._rfq_counter += 1
            return format_rfq_reference(self._rfq_counter)

    def next_po_number(self) -> str:
        with self._lock:
            self._po_counter += 1
            return format_po_reference(self._po_counter)

    # ------------------------------------------------------------------
    # RFQs
    # ------------------------------------------------------------------
    def create_rfq(
        self,
        items: Sequence[RFQItem],
        supplier_ids: Iterable[str],
        quote_deadline: Optional[datetime] = None,
        delivery_date: Optional[datetime] = None,
        notes: str = "",
    ) -> RFQ:
        """Create an active RFQ with one ``pending`` status per supplier.

        Duplicate supplier ids are collapsed, keeping first-seen order.
        """

        item_tuple = tuple(items or ())
        if not item_tuple:
            raise ValidationError("An RFQ needs at least one item")
        for item in item_tuple:
            if not str(item.name or "").strip():
                raise ValidationError("Every RFQ item needs a name")
            if int(item.qty) <= 0:
                raise ValidationError(f"Quantity for '{item.name}' must be positive")

        unique_ids: List[str] = []
        for supplier_id in supplier_ids or ():
            candidate = str(supplier_id or "").strip()
            if candidate and candidate not in unique_ids:
                unique_ids.append(candidate)
        if not unique_ids:
            raise ValidationError("An RFQ needs at least one supplier")

        with self._lock:
            now = self._clock()
            rfq = RFQ(
                id=generate_identifier(),
                reference_number=self.next_rfq_number(),
                items=item_tuple,
                suppliers=tuple(
                    SupplierStatus(
                        supplier_id=supplier_id,
                        status=SupplierResponseStatus.PENDING,
                        sent_at=now,
                    )
                    for supplier_id in unique_ids
                ),
                status=RFQStatus.ACTIVE,
                created_at=now,
                quote_deadline=as_utc(quote_deadline)
                or now + timedelta(days=self._quote_deadline_days),
                delivery_date=as_utc(delivery_date)
                or now + timedelta(days=self._delivery_days),
                notes=notes or "",
            )
            self._rfqs[rfq.id] = rfq
        logger.info(
            "Created %s for %d item(s) and %d supplier(s)",
            rfq.reference_number,
            len(rfq.items),
            len(rfq.suppliers),
        )
        return rfq

    def get_rfq(self, rfq_id: str) -> RFQ:
        with self._lock:
            rfq = self._rfqs.get(rfq_id)
        if rfq is None:
            raise NotFoundError(f"RFQ {rfq_id} not found")
        return rfq

    def get_rfq_by_reference(self, reference_number: str) -> RFQ:
        with self._lock:
            for rfq in self._rfqs.values():
                if rfq.reference_number == reference_number:
                    return rfq
        raise NotFoundError(f"RFQ {reference_number} not found")

    def get_supplier_status(self, rfq_id: str, supplier_id: str) -> SupplierStatus:
        return self._require_supplier(self.get_rfq(rfq_id), supplier_id)

    def list_rfqs(self) -> List[RFQ]:
        with self._lock:
            rfqs = list(self._rfqs.values())
        return sorted(rfqs, key=lambda rfq: rfq.created_at, reverse=True)

    def set_rfq_status(self, rfq_id: str, status: RFQStatus) -> RFQ:
        target = RFQStatus(status)
        with self._lock:
            rfq = self.get_rfq(rfq_id)
            if target is RFQStatus.ACTIVE or rfq.status is not RFQStatus.ACTIVE:
                raise PreconditionFailedError(
                    f"{rfq.reference_number} cannot move from {rfq.status.value} to {target.value}"
                )
            updated = replace(rfq, status=target)
            self._rfqs[rfq_id] = updated
        logger.info("%s is now %s", updated.reference_number, target.value)
        return updated

    def record_reminder(self, rfq_id: str, supplier_id: str) -> RFQ:
        """Stamp ``reminder_sent_at`` for a supplier that has not responded.

        The RFQ must still be active.  Both checks and the update happen under
        the store lock, so a reply captured concurrently is never reminded.
        """

        with self._lock:
            rfq = self.get_rfq(rfq_id)
            entry = self._require_supplier(rfq, supplier_id)
            if rfq.status is not RFQStatus.ACTIVE:
                raise PreconditionFailedError(
                    f"{rfq.reference_number} is {rfq.status.value}; reminders are not sent"
                )
            if entry.status is SupplierResponseStatus.RESPONDED:
                raise PreconditionFailedError(
                    f"{supplier_id} has already responded to {rfq.reference_number}"
                )
            updated = rfq.with_supplier_status(
                replace(entry, reminder_sent_at=self._clock())
            )
            self._rfqs[rfq_id] = updated
        return updated

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    def capture_quote(
        self,
        rfq_id: str,
        supplier_id: str,
        draft: QuoteDraft,
        supplier_name: Optional[str] = None,
    ) -> Quote:
        """Persist ``draft`` as the supplier's quote and mark them responded.

        Capturing for a supplier that already responded returns the quote on
        record and changes nothing, so a duplicate reply (or a simulated reply
        racing a real one) is harmless.
        """

        with self._lock:
            rfq = self.get_rfq(rfq_id)
            entry = self._require_supplier(rfq, supplier_id)

            if entry.status is SupplierResponseStatus.RESPONDED:
                existing = self.live_quote(rfq_id, supplier_id)
                if existing is not None:
                    logger.info(
                        "%s already responded to %s; keeping quote %s",
                        supplier_id,
                        rfq.reference_number,
                        existing.id,
                    )
                    return existing

            if rfq.status is not RFQStatus.ACTIVE:
                raise PreconditionFailedError(
                    f"{rfq.reference_number} is {rfq.status.value}; quotes are no longer accepted"
                )

            now = self._clock()
            items = tuple(
                QuoteLineItem(
                    sku=item.sku or "",
                    name=item.name,
                    qty=int(item.qty),
                    unit_price=float(item.unit_price),
                    total=float(item.total)
                    if item.total
                    else round(item.qty * item.unit_price, 2),
                )
                for item in draft.items
            )
            if draft.subtotal_stated:
                subtotal = round(float(draft.subtotal), 2)
            else:
                subtotal = round(sum(item.total for item in items), 2)
            delivery_cost = round(float(draft.delivery_cost or 0.0), 2)
            elapsed = (now - entry.sent_at).total_seconds() / 3600

            quote = Quote(
                id=generate_identifier(),
                rfq_id=rfq_id,
                supplier_id=supplier_id,
                supplier_name=supplier_name or supplier_id,
                items=items,
                subtotal=subtotal,
                delivery_cost=delivery_cost,
                landed_total=round(subtotal + delivery_cost, 2),
                lead_time_days=int(draft.lead_time_days or 0),
                payment_terms=draft.payment_terms or "",
                validity=draft.validity or "",
                captured_at=now,
                response_time_hours=round(max(elapsed, 0.0), 1),
            )
            self._quotes[quote.id] = quote
            self._rfqs[rfq_id] = rfq.with_supplier_status(
                replace(
                    entry,
                    status=SupplierResponseStatus.RESPONDED,
                    responded_at=now,
                )
            )
        logger.info(
            "Captured quote %s from %s for %s (landed total %.2f)",
            quote.id,
            supplier_id,
            rfq.reference_number,
            quote.landed_total,
        )
        return quote

    def get_quote(self, quote_id: str) -> Quote:
        with self._lock:
            quote = self._quotes.get(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote

    def quotes_for_rfq(self, rfq_id: str) -> List[Quote]:
        with self._lock:
            quotes = [q for q in self._quotes.values() if q.rfq_id == rfq_id]
        return sorted(quotes, key=lambda q: q.captured_at)

    def live_quote(self, rfq_id: str, supplier_id: str) -> Optional[Quote]:
        """Most recently captured quote from ``supplier_id`` for the RFQ."""

        candidates = [
            q for q in self.quotes_for_rfq(rfq_id) if q.supplier_id == supplier_id
        ]
        return candidates[-1] if candidates else None

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(
        self,
        supplier_id: str,
        supplier_name: str,
        items: Sequence[OrderItem],
        total: float,
        expected_delivery: datetime,
        payment_terms: str,
        rfq_id: Optional[str] = None,
    ) -> Order:
        item_tuple = tuple(items or ())
        if not item_tuple:
            raise ValidationError("An order needs at least one item")

        with self._lock:
            if rfq_id is not None:
                rfq = self.get_rfq(rfq_id)
                if rfq.status is not RFQStatus.ACTIVE:
                    raise PreconditionFailedError(
                        f"{rfq.reference_number} is {rfq.status.value}; it cannot be awarded"
                    )
            order = Order(
                id=generate_identifier(),
                po_number=self.next_po_number(),
                supplier_id=supplier_id,
                supplier_name=supplier_name,
                items=item_tuple,
                total=round(float(total), 2),
                status=OrderStatus.SENT,
                created_at=self._clock(),
                expected_delivery=as_utc(expected_delivery),
                payment_terms=payment_terms or "",
                rfq_id=rfq_id,
            )
            self._orders[order.id] = order
            if rfq_id is not None:
                self.set_rfq_status(rfq_id, RFQStatus.COMPLETED)
        logger.info(
            "Created %s for %s (total %.2f)", order.po_number, supplier_id, order.total
        )
        return order

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def list_orders(self) -> List[Order]:
        with self._lock:
            orders = list(self._orders.values())
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    def advance_order_status(self, order_id: str, status: OrderStatus) -> Order:
        target = OrderStatus(status)
        with self._lock:
            order = self.get_order(order_id)
            current_index = ORDER_STATUS_SEQUENCE.index(order.status)
            target_index = ORDER_STATUS_SEQUENCE.index(target)
            if target_index <= current_index:
                raise PreconditionFailedError(
                    f"{order.po_number} is already {order.status.value}"
                )
            updated = replace(order, status=target)
            self._orders[order_id] = updated
        return updated

    # ------------------------------------------------------------------
    # Simulation bookkeeping
    # ------------------------------------------------------------------
    def add_simulation_task(self, task: SimulationTask) -> SimulationTask:
        """Record a newly scheduled reply for ``task.key``.

        Earlier attempts are kept.  A new attempt is only accepted after the
        previous one failed; a ``scheduled`` or ``sent`` task is never replaced.
        """

        with self._lock:
            history = self._simulation_tasks.setdefault(task.key, [])
            if history and history[-1].status is not SimulationTaskStatus.FAILED:
                raise PreconditionFailedError(
                    f"Simulated reply from {task.supplier_id} for {task.rfq_id} "
                    f"is already {history[-1].status.value}"
                )
            history.append(task)
        return task

    def update_simulation_task(self, task: SimulationTask) -> SimulationTask:
        with self._lock:
            history = self._simulation_tasks.get(task.key)
            if not history:
                raise NotFoundError(
                    f"No simulation task for {task.rfq_id}/{task.supplier_id}"
                )
            history[-1] = task
        return task

    def get_simulation_task(self, rfq_id: str, supplier_id: str) -> Optional[SimulationTask]:
        """Return the latest attempt for the supplier, if any."""

        with self._lock:
            history = self._simulation_tasks.get((rfq_id, supplier_id))
            return history[-1] if history else None

    def simulation_tasks(self, rfq_id: Optional[str] = None) -> List[SimulationTask]:
        with self._lock:
            tasks = [task for history in self._simulation_tasks.values() for task in history]
        if rfq_id is not None:
            tasks = [task for task in tasks if task.rfq_id == rfq_id]
        return sorted(tasks, key=lambda task: task.scheduled_for)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _require_supplier(rfq: RFQ, supplier_id: str) -> SupplierStatus:
        entry = rfq.supplier_status(supplier_id)
        if entry is None:
            raise NotFoundError(
                f"Supplier {supplier_id} was not invited to {rfq.reference_number}"
            )
        return entry


__all__ = ["NegotiationStore"]
