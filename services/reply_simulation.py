"""Synthetic supplier replies for demos and end-to-end tests.

After an RFQ goes out, every supplier that is not configured as a
non-responder gets a reply scheduled on the :class:`BackendScheduler`, spaced
``supplier_reply_delay_seconds`` apart.  When a reply fires the supplier's
pricing is synthesised from price history, rendered in the supplier's house
style, emailed to the buyer, and then read back through the same extraction
and capture path a real reply takes.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Dict, List, Optional

from models.negotiation import (
    RFQ,
    ExtractedLineItem,
    QuoteDraft,
    RFQStatus,
    SimulationTask,
    SimulationTaskStatus,
    SupplierResponseStatus,
)
from repositories.reference_data_repo import Supplier
from services.supplier_reply_templates import render_supplier_reply
from utils.exceptions import DispatchError, NotFoundError, PreconditionFailedError

logger = logging.getLogger(__name__)

DEFAULT_BASE_PRICE = 1.00


@dataclass(frozen=True)
class SupplierProfile:
    """How a simulated supplier prices and ships relative to its history."""

    bias_low: float
    bias_high: float
    delivery_cost: float = 0.0
    lead_time_days: Optional[int] = None
    validity: str = "14 days"


SUPPLIER_PROFILES: Dict[str, SupplierProfile] = {
    # RS Components: slightly above market, reliable.
    "sup-001": SupplierProfile(1.00, 1.05, 0.0, 5, "14 days"),
    # Würth: cheapest but slow, quotes in EUR.
    "sup-002": SupplierProfile(0.88, 0.94, 45.0, 8, "21 days"),
    # Fabory: premium but fastest.
    "sup-003": SupplierProfile(1.05, 1.13, 25.0, 4, "14 days"),
    # Brammer: mid-range.
    "sup-004": SupplierProfile(0.95, 1.05, 0.0, 3, "14 days"),
    # Anixter: mid to high.
    "sup-005": SupplierProfile(1.00, 1.10, 15.0, 6, "21 days"),
}
FALLBACK_PROFILE = SupplierProfile(0.85, 1.15)


class ReplySimulator:
    def __init__(
        self,
        workflow,
        scheduler=None,
        *,
        settings=None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.workflow = workflow
        self.store = workflow.store
        self.reference = workflow.reference
        self.dispatcher = workflow.dispatcher
        self.scheduler = scheduler or workflow.scheduler
        self.settings = settings if settings is not None else workflow.settings
        self._rng = rng or random.Random()
        self._rng_lock = threading.Lock()
        self.non_responding = set(
            getattr(self.settings, "non_responding_suppliers", None) or ()
        )
        self.reply_delay = timedelta(
            seconds=float(getattr(self.settings, "supplier_reply_delay_seconds", 30.0))
        )
        self.buyer_name = str(getattr(self.settings, "buyer_name", "James Cooper"))
        self.buyer_email = getattr(self.settings, "buyer_email", None)
        self.sender_email = getattr(self.settings, "supplier_sim_email", None)
        self.eur_per_gbp = float(getattr(self.settings, "eur_per_gbp", 1.16))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, rfq: RFQ) -> List[SimulationTask]:
        """Schedule one reply per supplier still expected to answer ``rfq``.

        Non-responders and suppliers that already responded are skipped, as
        is any supplier whose latest reply is still scheduled or already sent.
        Returns the newly scheduled tasks.
        """

        now = self.store.now()
        tasks: List[SimulationTask] = []
        for supplier_id in rfq.supplier_ids:
            if supplier_id in self.non_responding:
                continue
            entry = rfq.supplier_status(supplier_id)
            if entry is not None and entry.status is SupplierResponseStatus.RESPONDED:
                logger.debug("%s already responded to %s", supplier_id, rfq.reference_number)
                continue
            delay = self.reply_delay * (len(tasks) + 1)
            try:
                task = self.store.add_simulation_task(
                    SimulationTask(
                        rfq_id=rfq.id,
                        supplier_id=supplier_id,
                        scheduled_for=now + delay,
                    )
                )
            except PreconditionFailedError as exc:
                logger.info("Not rescheduling simulated reply: %s", exc)
                continue
            self.scheduler.submit_once(
                f"simulated-reply:{rfq.id}:{supplier_id}",
                partial(self.deliver_reply, rfq.id, supplier_id),
                initial_delay=delay,
            )
            tasks.append(task)
            logger.info(
                "Scheduled simulated reply from %s for %s in %.0fs",
                supplier_id,
                rfq.reference_number,
                delay.total_seconds(),
            )
        return tasks

    def trigger(self, rfq_id: str) -> List[SimulationTask]:
        """Schedule replies for an existing RFQ on demand.

        Only suppliers without a pending or delivered reply are scheduled, so
        triggering twice never sends a supplier's reply twice.
        """

        return self.schedule(self.store.get_rfq(rfq_id))

    def status(self, rfq_id: Optional[str] = None) -> List[SimulationTask]:
        return self.store.simulation_tasks(rfq_id)

    # ------------------------------------------------------------------
    # Reply generation
    # ------------------------------------------------------------------
    def price_quote(self, rfq: RFQ, supplier: Supplier) -> QuoteDraft:
        profile = SUPPLIER_PROFILES.get(supplier.id, FALLBACK_PROFILE)
        items = []
        for rfq_item in rfq.items:
            history = self.reference.price_history(rfq_item.sku, supplier.id)
            latest = history.latest if history else None
            base_price = latest.unit_price if latest else DEFAULT_BASE_PRICE
            with self._rng_lock:
                bias = self._rng.uniform(profile.bias_low, profile.bias_high)
            unit_price = round(base_price * bias, 2)
            items.append(
                ExtractedLineItem(
                    name=rfq_item.name,
                    qty=rfq_item.qty,
                    unit_price=unit_price,
                    total=round(unit_price * rfq_item.qty, 2),
                    sku=rfq_item.sku,
                )
            )
        lead_time = profile.lead_time_days
        if lead_time is None:
            lead_time = supplier.avg_lead_time_days
        return QuoteDraft(
            items=tuple(items),
            subtotal=round(sum(item.total for item in items), 2),
            subtotal_stated=True,
            delivery_cost=profile.delivery_cost,
            lead_time_days=lead_time,
            payment_terms=supplier.payment_terms,
            validity=profile.validity,
        )

    def deliver_reply(self, rfq_id: str, supplier_id: str) -> None:
        """Send and capture one simulated reply; the task ends ``sent`` or ``failed``."""

        try:
            rfq = self.store.get_rfq(rfq_id)
            if rfq.status is not RFQStatus.ACTIVE:
                raise PreconditionFailedError(
                    f"{rfq.reference_number} is {rfq.status.value}"
                )
            entry = self.store.get_supplier_status(rfq_id, supplier_id)
            if entry.status is SupplierResponseStatus.RESPONDED:
                raise PreconditionFailedError(
                    f"{supplier_id} already responded to {rfq.reference_number}"
                )
            supplier = self.reference.get_supplier(supplier_id)
            if supplier is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            if not self.buyer_email:
                raise DispatchError("No buyer email configured for simulated replies")

            quote = self.price_quote(rfq, supplier)
            body = render_supplier_reply(
                rfq,
                supplier,
                quote,
                buyer_name=self.buyer_name,
                eur_per_gbp=self.eur_per_gbp,
            )
            self.dispatcher.dispatch_or_raise(
                f"[{supplier.name}] RE: {rfq.reference_number} — Request for Quotation",
                body,
                [self.buyer_email],
                sender=self.sender_email,
                from_name=supplier.name,
            )
            captured = self.workflow.capture_reply(rfq_id, supplier_id, body)
        except Exception as exc:
            logger.exception(
                "Simulated reply from %s for RFQ %s failed", supplier_id, rfq_id
            )
            self._finish(rfq_id, supplier_id, error=str(exc) or exc.__class__.__name__)
            return

        self._finish(rfq_id, supplier_id)
        logger.info(
            "Sent simulated reply from %s for %s (quote %s captured)",
            supplier.name,
            rfq.reference_number,
            captured.id,
        )

    def _finish(self, rfq_id: str, supplier_id: str, error: Optional[str] = None) -> None:
        task = self.store.get_simulation_task(rfq_id, supplier_id)
        if task is None or task.status is not SimulationTaskStatus.SCHEDULED:
            logger.debug("No scheduled simulation task for %s/%s", rfq_id, supplier_id)
            return
        if error is None:
            self.store.update_simulation_task(task.mark_sent(self.store.now()))
        else:
            self.store.update_simulation_task(task.mark_failed(error))


__all__ = ["ReplySimulator", "SupplierProfile", "SUPPLIER_PROFILES", "FALLBACK_PROFILE"]
