"""RFQ lifecycle: issue, chase, capture, compare and award.

:class:`RFQWorkflow` is the entry point for every state-changing negotiation
operation.  It owns no state itself; records live in the
:class:`~repositories.negotiation_store.NegotiationStore` and supplier
correspondence goes out through the best-effort dispatch service, so a mail
outage never blocks an RFQ, a capture or an award.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Iterable, List, Optional, Sequence

from models.negotiation import (
    RFQ,
    Order,
    OrderItem,
    Quote,
    QuoteDraft,
    RFQItem,
    RFQStatus,
    SupplierResponseStatus,
    effective_status,
)
from repositories.negotiation_store import NegotiationStore
from repositories.reference_data_repo import ReferenceDataRepository
from services.backend_scheduler import BackendScheduler
from services.buyer_email_templates import BuyerEmailTemplateRenderer
from services.email_dispatch_service import EmailDispatchService
from services.order_service import OrderService
from services.quote_comparison import QuoteComparison, compare_quotes
from services.quote_extraction import extract_quote_from_email, match_items_to_rfq
from utils.exceptions import PreconditionFailedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SupplierStatusView:
    """A supplier's position on an RFQ as shown to the buyer."""

    supplier_id: str
    supplier_name: str
    status: SupplierResponseStatus
    sent_at: datetime
    responded_at: Optional[datetime] = None
    reminder_sent_at: Optional[datetime] = None
    quote_id: Optional[str] = None


class RFQWorkflow:
    def __init__(
        self,
        store: NegotiationStore,
        reference: ReferenceDataRepository,
        dispatcher: EmailDispatchService,
        scheduler: BackendScheduler,
        *,
        settings=None,
        renderer: Optional[BuyerEmailTemplateRenderer] = None,
        order_service: Optional[OrderService] = None,
        simulator=None,
    ) -> None:
        self.store = store
        self.reference = reference
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.settings = settings
        self.renderer = renderer or BuyerEmailTemplateRenderer.from_settings(settings)
        self.order_service = order_service or OrderService(
            store, reference, dispatcher, self.renderer, settings
        )
        self.simulator = simulator
        self._domestic_currency = str(
            getattr(settings, "domestic_currency_symbol", "£") or "£"
        )

    def attach_simulator(self, simulator) -> None:
        self.simulator = simulator

    @property
    def simulation_enabled(self) -> bool:
        return self.simulator is not None and bool(
            getattr(self.settings, "simulation_enabled", True)
        )

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
        """Create the RFQ, email it to each supplier and schedule simulated replies."""

        rfq = self.store.create_rfq(
            items,
            supplier_ids,
            quote_deadline=quote_deadline,
            delivery_date=delivery_date,
            notes=notes,
        )

        for supplier_id in rfq.supplier_ids:
            supplier = self.reference.get_supplier(supplier_id)
            if supplier is None:
                logger.warning(
                    "Supplier %s is not in reference data; %s not emailed",
                    supplier_id,
                    rfq.reference_number,
                )
                continue
            subject, body = self.renderer.rfq_request(rfq, supplier)
            self.dispatcher.dispatch(
                subject,
                body,
                [self.reference.supplier_email(supplier)],
                headers={"X-Hexa-RFQ-Reference": rfq.reference_number},
            )

        if self.simulation_enabled:
            try:
                self.simulator.schedule(rfq)
            except Exception:
                logger.exception(
                    "Failed to schedule simulated replies for %s", rfq.reference_number
                )
        return rfq

    def get_rfq(self, rfq_id: str) -> RFQ:
        return self.store.get_rfq(rfq_id)

    def list_rfqs(self) -> List[RFQ]:
        return self.store.list_rfqs()

    def cancel_rfq(self, rfq_id: str) -> RFQ:
        return self.store.set_rfq_status(rfq_id, RFQStatus.CANCELLED)

    def supplier_statuses(
        self, rfq_id: str, now: Optional[datetime] = None
    ) -> List[SupplierStatusView]:
        rfq = self.store.get_rfq(rfq_id)
        moment = now or self.store.now()
        views = []
        for entry in rfq.suppliers:
            supplier = self.reference.get_supplier(entry.supplier_id)
            quote = self.store.live_quote(rfq_id, entry.supplier_id)
            views.append(
                SupplierStatusView(
                    supplier_id=entry.supplier_id,
                    supplier_name=supplier.name if supplier else entry.supplier_id,
                    status=effective_status(rfq, entry, moment),
                    sent_at=entry.sent_at,
                    responded_at=entry.responded_at,
                    reminder_sent_at=entry.reminder_sent_at,
                    quote_id=quote.id if quote else None,
                )
            )
        return views

    # ------------------------------------------------------------------
    # Supplier correspondence
    # ------------------------------------------------------------------
    def send_reminder(self, rfq_id: str, supplier_id: str) -> RFQ:
        """Chase a supplier who has not responded yet.

        Allowed while the stored status is ``pending`` (displayed as
        ``pending`` or ``no-response``); the reminder time is recorded even if
        the email cannot be sent.
        """

        updated = self.store.record_reminder(rfq_id, supplier_id)
        supplier = self.reference.get_supplier(supplier_id)
        if supplier is None:
            logger.warning("Reminder for %s not emailed: unknown supplier", supplier_id)
            return updated
        subject, body = self.renderer.reminder(updated, supplier)
        self.dispatcher.dispatch(subject, body, [self.reference.supplier_email(supplier)])
        return updated

    def reject_supplier(self, rfq_id: str, supplier_id: str) -> bool:
        """Send a supplier the 'unsuccessful on this occasion' notice."""

        rfq = self.store.get_rfq(rfq_id)
        self.store.get_supplier_status(rfq_id, supplier_id)
        return self._send_rejection(rfq, supplier_id)

    def _send_rejection(self, rfq: RFQ, supplier_id: str) -> bool:
        supplier = self.reference.get_supplier(supplier_id)
        if supplier is None:
            logger.warning("Rejection for %s not emailed: unknown supplier", supplier_id)
            return False
        subject, body = self.renderer.rejection(rfq, supplier)
        return self.dispatcher.dispatch(
            subject, body, [self.reference.supplier_email(supplier)]
        )

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------
    def extract_reply(self, raw_body: str, rfq_id: Optional[str] = None) -> QuoteDraft:
        """Preview the quote in a reply without capturing it."""

        draft = extract_quote_from_email(raw_body, domestic_currency=self._domestic_currency)
        if rfq_id:
            rfq = self.store.get_rfq(rfq_id)
            draft = match_items_to_rfq(draft, rfq.items)
        return draft

    def capture_quote(self, rfq_id: str, supplier_id: str, draft: QuoteDraft) -> Quote:
        supplier = self.reference.get_supplier(supplier_id)
        return self.store.capture_quote(
            rfq_id,
            supplier_id,
            draft,
            supplier_name=supplier.name if supplier else None,
        )

    def capture_reply(self, rfq_id: str, supplier_id: str, raw_body: str) -> Quote:
        draft = self.extract_reply(raw_body, rfq_id=rfq_id)
        return self.capture_quote(rfq_id, supplier_id, draft)

    def quotes_for_rfq(self, rfq_id: str) -> List[Quote]:
        self.store.get_rfq(rfq_id)
        return self.store.quotes_for_rfq(rfq_id)

    def compare_quotes(self, rfq_id: str) -> QuoteComparison:
        rfq = self.store.get_rfq(rfq_id)
        return compare_quotes(
            rfq.id,
            self.store.quotes_for_rfq(rfq.id),
            self.reference.on_time_rates(rfq.supplier_ids),
        )

    # ------------------------------------------------------------------
    # Award
    # ------------------------------------------------------------------
    def award_rfq(
        self,
        rfq_id: str,
        supplier_id: str,
        finalized_items: Optional[Sequence[OrderItem]] = None,
        notify_others: bool = False,
        send_purchase_order: bool = True,
        expected_delivery: Optional[datetime] = None,
    ) -> Order:
        """Place the order with ``supplier_id`` and complete the RFQ.

        The order total is the item totals plus the quoted delivery cost.
        Rejection notices to the other suppliers are queued on the scheduler
        and never delay or fail the award.
        """

        rfq = self.store.get_rfq(rfq_id)
        if rfq.status is not RFQStatus.ACTIVE:
            raise PreconditionFailedError(
                f"{rfq.reference_number} is {rfq.status.value}; it cannot be awarded"
            )
        quote = self.store.live_quote(rfq_id, supplier_id)
        if quote is None:
            raise PreconditionFailedError(
                f"No quote captured from {supplier_id} for {rfq.reference_number}"
            )

        if finalized_items:
            items = tuple(finalized_items)
        else:
            items = tuple(
                OrderItem(
                    sku=item.sku,
                    name=item.name,
                    qty=item.qty,
                    unit_price=item.unit_price,
                    total=item.total,
                )
                for item in quote.items
            )
        total = round(sum(item.total for item in items) + quote.delivery_cost, 2)

        supplier = self.reference.get_supplier(supplier_id)
        payment_terms = quote.payment_terms or (supplier.payment_terms if supplier else "")
        order = self.store.create_order(
            supplier_id=supplier_id,
            supplier_name=quote.supplier_name,
            items=items,
            total=total,
            expected_delivery=expected_delivery or rfq.delivery_date,
            payment_terms=payment_terms,
            rfq_id=rfq.id,
        )
        logger.info(
            "Awarded %s to %s as %s", rfq.reference_number, supplier_id, order.po_number
        )

        if send_purchase_order:
            self.order_service.send_purchase_order(order)

        if notify_others:
            for other_id in rfq.supplier_ids:
                if other_id == supplier_id:
                    continue
                self.scheduler.submit_once(
                    f"rejection:{rfq.id}:{other_id}",
                    partial(self._send_rejection, rfq, other_id),
                )
        return order

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def list_orders(self) -> List[Order]:
        return self.order_service.list_orders()


__all__ = ["RFQWorkflow", "SupplierStatusView"]
