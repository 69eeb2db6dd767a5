"""Render the buyer's outbound negotiation emails."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Optional, Tuple

from models.negotiation import RFQ, Order
from repositories.reference_data_repo import Supplier

_CELL = 'style="padding:6px 8px;border:1px solid #ddd;"'
_HEAD_CELL = 'style="padding:6px 8px;border:1px solid #ddd;text-align:left;"'
_WRAPPER_OPEN = '<div style="font-family: Segoe UI, sans-serif; max-width: 600px;">'


def _long_date(value: datetime) -> str:
    return f"{value.day} {value.strftime('%B %Y')}"


def _short_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


@dataclass(frozen=True)
class BuyerContext:
    name: str
    company: str
    email: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "BuyerContext":
        return cls(
            name=str(getattr(settings, "buyer_name", "James Cooper")),
            company=str(getattr(settings, "buyer_company", "Meridian Industrial Supplies")),
            email=getattr(settings, "buyer_email", None),
        )


class BuyerEmailTemplateRenderer:
    """Render RFQ, reminder, purchase order, rejection and follow-up emails.

    Every helper returns a ``(subject, html_body)`` tuple.
    """

    def __init__(self, buyer: BuyerContext):
        self._buyer = buyer

    @classmethod
    def from_settings(cls, settings) -> "BuyerEmailTemplateRenderer":
        return cls(BuyerContext.from_settings(settings))

    # ------------------------------------------------------------------
    # Public render helpers
    # ------------------------------------------------------------------
    def rfq_request(self, rfq: RFQ, supplier: Supplier) -> Tuple[str, str]:
        rows = "".join(
            f"<tr><td {_CELL}>{i + 1}</td><td {_CELL}>{escape(item.name)}</td>"
            f"<td {_CELL}>{escape(item.sku)}</td><td {_CELL}>{item.qty} {escape(item.unit)}s</td></tr>"
            for i, item in enumerate(rfq.items)
        )
        notes = f"<p><strong>Notes:</strong> {escape(rfq.notes)}</p>" if rfq.notes else ""
        subject = f"{rfq.reference_number} — Request for Quotation"
        body = (
            f"{_WRAPPER_OPEN}"
            f'<h2 style="color: #1B4D7A;">Request for Quotation — {rfq.reference_number}</h2>'
            f"<p>Dear {escape(supplier.contact_name)},</p>"
            "<p>We would like to request a quotation for the following items:</p>"
            '<table style="width:100%;border-collapse:collapse;margin:16px 0;">'
            f"<thead><tr><th {_HEAD_CELL}>#</th><th {_HEAD_CELL}>Description</th>"
            f"<th {_HEAD_CELL}>SKU</th><th {_HEAD_CELL}>Qty</th></tr></thead>"
            f"<tbody>{rows}</tbody></table>"
            f"<p><strong>Required delivery date:</strong> {_long_date(rfq.delivery_date)}</p>"
            f"<p><strong>Quote deadline:</strong> {_long_date(rfq.quote_deadline)}</p>"
            f"{notes}"
            "<p>Please reply to this email with your best pricing, lead time, and payment terms.</p>"
            f"{self._signature()}</div>"
        )
        return subject, body

    def reminder(self, rfq: RFQ, supplier: Supplier) -> Tuple[str, str]:
        subject = f"Reminder: {rfq.reference_number} — Request for Quotation"
        body = (
            f"{_WRAPPER_OPEN}"
            f"<p>Dear {escape(supplier.contact_name)},</p>"
            "<p>This is a friendly reminder regarding our request for quotation "
            f"<strong>{rfq.reference_number}</strong> sent on {_short_date(rfq.created_at)}.</p>"
            "<p>We would appreciate receiving your quotation at your earliest convenience. "
            f"The quote deadline is <strong>{_short_date(rfq.quote_deadline)}</strong>.</p>"
            f"{self._signature()}</div>"
        )
        return subject, body

    def purchase_order(self, order: Order, supplier: Supplier) -> Tuple[str, str]:
        rows = "".join(
            f"<tr><td {_CELL}>{i + 1}</td><td {_CELL}>{escape(item.name)}</td>"
            f"<td {_CELL}>{item.qty}</td><td {_CELL}>£{item.unit_price:,.2f}</td>"
            f"<td {_CELL}>£{item.total:,.2f}</td></tr>"
            for i, item in enumerate(order.items)
        )
        subject = f"{order.po_number} — Purchase Order from {self._buyer.company}"
        body = (
            f"{_WRAPPER_OPEN}"
            f'<h2 style="color: #1B4D7A;">Purchase Order {order.po_number}</h2>'
            f"<p>Dear {escape(supplier.contact_name)},</p>"
            "<p>Please find our purchase order below:</p>"
            '<table style="width: 100%; border-collapse: collapse; margin: 16px 0;">'
            f"<thead><tr><th {_HEAD_CELL}>#</th><th {_HEAD_CELL}>Description</th>"
            f"<th {_HEAD_CELL}>Qty</th><th {_HEAD_CELL}>Unit Price</th>"
            f"<th {_HEAD_CELL}>Total</th></tr></thead><tbody>{rows}</tbody></table>"
            f"<p><strong>Total: £{order.total:,.2f}</strong></p>"
            f"<p>Required delivery date: {_long_date(order.expected_delivery)}</p>"
            f"<p>Payment terms: {escape(order.payment_terms)}</p>"
            "<p>Please confirm receipt and expected delivery schedule.</p>"
            f"{self._signature()}</div>"
        )
        return subject, body

    def rejection(self, rfq: RFQ, supplier: Supplier) -> Tuple[str, str]:
        subject = f"RE: {rfq.reference_number} — Thank you"
        body = (
            f"{_WRAPPER_OPEN}"
            f"<p>Dear {escape(supplier.contact_name)},</p>"
            f"<p>Thank you for your quotation in response to our {rfq.reference_number}.</p>"
            "<p>After careful consideration, we have decided to place this order with "
            "another supplier on this occasion.</p>"
            "<p>We appreciate your time and look forward to working with you on future "
            "opportunities.</p>"
            f"{self._signature()}</div>"
        )
        return subject, body

    def order_follow_up(self, order: Order, supplier: Supplier) -> Tuple[str, str]:
        subject = f"Follow-up: {order.po_number}"
        body = (
            f"{_WRAPPER_OPEN}"
            f"<p>Dear {escape(supplier.contact_name)},</p>"
            f"<p>I'm writing to follow up on our purchase order <strong>{order.po_number}</strong> "
            f"placed on {_short_date(order.created_at)}.</p>"
            f"<p>The expected delivery date was {_short_date(order.expected_delivery)} "
            "and we haven't yet received the goods.</p>"
            "<p>Could you please provide an update on the delivery status?</p>"
            f"{self._signature()}</div>"
        )
        return subject, body

    def _signature(self) -> str:
        return (
            f"<p>Kind regards,<br/>{escape(self._buyer.name)}<br/>"
            f"{escape(self._buyer.company)}</p>"
        )


__all__ = ["BuyerContext", "BuyerEmailTemplateRenderer"]
