"""Purchase orders: creation, supplier correspondence and status tracking."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from models.negotiation import Order, OrderItem, OrderStatus
from repositories.negotiation_store import NegotiationStore
from repositories.reference_data_repo import ReferenceDataRepository
from services.buyer_email_templates import BuyerEmailTemplateRenderer
from services.email_dispatch_service import EmailDispatchService
from utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(
        self,
        store: NegotiationStore,
        reference: ReferenceDataRepository,
        dispatcher: EmailDispatchService,
        renderer: BuyerEmailTemplateRenderer,
        settings=None,
    ) -> None:
        self.store = store
        self.reference = reference
        self.dispatcher = dispatcher
        self.renderer = renderer
        self.settings = settings
        self._delivery_days = int(getattr(settings, "default_delivery_days", 7))

    def create_direct_order(
        self,
        supplier_id: str,
        items: Sequence[OrderItem],
        *,
        total: Optional[float] = None,
        expected_delivery: Optional[datetime] = None,
        payment_terms: Optional[str] = None,
        send_email: bool = True,
    ) -> Order:
        """Raise a purchase order without a preceding RFQ (quick reorder)."""

        supplier = self.reference.get_supplier(supplier_id)
        if supplier is None:
            raise ValidationError(f"Unknown supplier {supplier_id}")
        if not items:
            raise ValidationError("An order needs at least one item")

        order_total = total if total is not None else sum(item.total for item in items)
        order = self.store.create_order(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            items=items,
            total=order_total,
            expected_delivery=expected_delivery
            or self.store.now() + timedelta(days=self._delivery_days),
            payment_terms=payment_terms or supplier.payment_terms,
        )
        if send_email:
            self.send_purchase_order(order)
        return order

    def send_purchase_order(self, order: Order) -> bool:
        supplier = self.reference.get_supplier(order.supplier_id)
        if supplier is None:
            logger.warning(
                "Cannot send %s: supplier %s is not in reference data",
                order.po_number,
                order.supplier_id,
            )
            return False
        subject, body = self.renderer.purchase_order(order, supplier)
        return self.dispatcher.dispatch(
            subject, body, [self.reference.supplier_email(supplier)]
        )

    def send_follow_up(self, order_id: str) -> bool:
        """Chase the supplier about an order that has not arrived."""

        order = self.store.get_order(order_id)
        supplier = self.reference.get_supplier(order.supplier_id)
        if supplier is None:
            raise ValidationError(f"Supplier {order.supplier_id} not found")
        subject, body = self.renderer.order_follow_up(order, supplier)
        sent = self.dispatcher.dispatch(
            subject, body, [self.reference.supplier_email(supplier)]
        )
        logger.info("Follow-up for %s dispatched=%s", order.po_number, sent)
        return sent

    def advance_status(self, order_id: str, status: OrderStatus) -> Order:
        order = self.store.advance_order_status(order_id, status)
        logger.info("%s moved to %s", order.po_number, order.status.value)
        return order

    def get_order(self, order_id: str) -> Order:
        return self.store.get_order(order_id)

    def list_orders(self) -> List[Order]:
        return self.store.list_orders()


__all__ = ["OrderService"]
