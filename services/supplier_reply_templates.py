"""House-style supplier replies used by the reply simulator.

Each renderer takes the RFQ being answered, the replying supplier and the
priced quote, and returns the HTML body that supplier would send.  The
layouts are the ones :mod:`services.quote_extraction` understands, so a
rendered reply extracts back to the quote it was rendered from.
"""

from __future__ import annotations

from html import escape
from typing import Callable, Dict, Sequence

from models.negotiation import RFQ, QuoteDraft
from repositories.reference_data_repo import Supplier

DEFAULT_BUYER_NAME = "James Cooper"
DEFAULT_EUR_PER_GBP = 1.16

_TH_STYLE = (
    'style="padding:6px 10px;border:1px solid #ddd;background:#f5f5f5;'
    'text-align:left;font-size:13px;"'
)
_TD_STYLE = 'style="padding:6px 10px;border:1px solid #ddd;font-size:13px;"'
_WRAPPER_OPEN = '<div style="font-family:Segoe UI,sans-serif;font-size:14px;">'

Renderer = Callable[..., str]


def _gbp(value: float) -> str:
    return f"£{value:,.2f}"


def _eur(value: float) -> str:
    return f"€{value:,.2f}"


def _first_name(buyer_name: str) -> str:
    parts = (buyer_name or DEFAULT_BUYER_NAME).split()
    return parts[0] if parts else "there"


def _last_name(buyer_name: str) -> str:
    parts = (buyer_name or DEFAULT_BUYER_NAME).split()
    return parts[-1] if parts else "Cooper"


def _reference_digits(rfq: RFQ) -> int:
    digits = "".join(ch for ch in rfq.reference_number if ch.isdigit())
    return int(digits) if digits else 0


def html_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    ths = "".join(f"<th {_TH_STYLE}>{escape(h)}</th>" for h in headers)
    trs = "".join(
        "<tr>" + "".join(f"<td {_TD_STYLE}>{escape(cell)}</td>" for cell in row) + "</tr>"
        for row in rows
    )
    return (
        '<table style="border-collapse:collapse;margin:12px 0;">\n'
        f"<thead><tr>{ths}</tr></thead>\n<tbody>{trs}</tbody>\n</table>"
    )


def render_rs_components_reply(
    rfq: RFQ, supplier: Supplier, quote: QuoteDraft, *, buyer_name: str = DEFAULT_BUYER_NAME
) -> str:
    rows = [
        [str(i + 1), item.name, str(item.qty), _gbp(item.unit_price), _gbp(item.total)]
        for i, item in enumerate(quote.items)
    ]
    table = html_table(["Item", "Description", "Qty", "Unit Price (GBP)", "Total"], rows)
    delivery = (
        "Free (mainland UK)" if not quote.delivery_cost else _gbp(quote.delivery_cost)
    )
    return f"""{_WRAPPER_OPEN}
<p>Hi {escape(_first_name(buyer_name))},</p>
<p>Thanks for the enquiry. Please find our pricing below for the items requested on {escape(rfq.reference_number)}:</p>
{table}
<p>Subtotal: {_gbp(quote.subtotal)}<br/>
Delivery: {delivery}<br/>
Lead time: {quote.lead_time_days} working days from PO receipt<br/>
Payment terms: {escape(quote.payment_terms)}</p>
<p>Quote valid for {escape(quote.validity)}. Happy to discuss if you need anything adjusted.</p>
<p>Best regards,<br/><strong>{escape(supplier.contact_name)}</strong><br/>Account Manager, Industrial Distribution<br/>{escape(supplier.name)}</p>
</div>"""


def render_wurth_reply(
    rfq: RFQ,
    supplier: Supplier,
    quote: QuoteDraft,
    *,
    buyer_name: str = DEFAULT_BUYER_NAME,
    eur_per_gbp: float = DEFAULT_EUR_PER_GBP,
) -> str:
    quote_ref = f"WUR-Q-{rfq.created_at.year}-{1000 + _reference_digits(rfq) % 9000}"
    item_lines = "<br/>".join(
        f"Item {i + 1}: {escape(item.name)} — {item.qty} pcs — "
        f"{_eur(item.unit_price * eur_per_gbp)}/pc ({_gbp(item.unit_price)}) — "
        f"{_eur(item.total * eur_per_gbp)}"
        for i, item in enumerate(quote.items)
    )
    return f"""{_WRAPPER_OPEN}
<p>Dear Mr {escape(_last_name(buyer_name))},</p>
<p>Thank you for your Request for Quotation ref. {escape(rfq.reference_number)}.</p>
<p>We are pleased to submit the following quotation:</p>
<p><strong>QUOTATION REF: {quote_ref}</strong></p>
<p>{item_lines}</p>
<p>Total: {_eur(quote.subtotal * eur_per_gbp)} (approx. {_gbp(quote.subtotal)})<br/>
Delivery: {quote.lead_time_days} working days ex-works Germany. Shipping to UK: {_eur(quote.delivery_cost)}<br/>
Payment: {escape(quote.payment_terms)}<br/>
Minimum order: As quoted<br/>
Validity: {escape(quote.validity)}</p>
<p><em>Please note all prices are subject to our General Terms and Conditions.</em></p>
<p>Mit freundlichen Grüßen / Kind regards,<br/><strong>{escape(supplier.contact_name)}</strong><br/>Export Sales, Fastener Division<br/>Würth Group</p>
</div>"""


def render_fabory_reply(
    rfq: RFQ, supplier: Supplier, quote: QuoteDraft, *, buyer_name: str = DEFAULT_BUYER_NAME
) -> str:
    rows = [
        [item.name, str(item.qty), _gbp(item.unit_price), _gbp(item.total)]
        for item in quote.items
    ]
    table = html_table(["Description", "Qty", "Unit Price", "Total"], rows)
    return f"""{_WRAPPER_OPEN}
<p>Hello {escape(_first_name(buyer_name))},</p>
<p>Thank you for your enquiry {escape(rfq.reference_number)}. Here is our quotation:</p>
{table}
<p>Subtotal: {_gbp(quote.subtotal)}<br/>
Shipping: {_gbp(quote.delivery_cost)} (Netherlands warehouse, DDP UK)<br/>
Lead time: {quote.lead_time_days} working days<br/>
Payment: {escape(quote.payment_terms)}<br/>
Valid for: {escape(quote.validity)}</p>
<p>Let me know if you have any questions.</p>
<p>Kind regards,<br/><strong>{escape(supplier.contact_name)}</strong><br/>Fabory, Your Fastener Partner</p>
</div>"""


def render_brammer_reply(
    rfq: RFQ, supplier: Supplier, quote: QuoteDraft, *, buyer_name: str = DEFAULT_BUYER_NAME
) -> str:
    item_lines = "<br/>".join(
        f"- {escape(item.name)}: {item.qty} units at {_gbp(item.unit_price)} each = {_gbp(item.total)}"
        for item in quote.items
    )
    if quote.delivery_cost:
        delivery_line = f"That comes to {_gbp(quote.subtotal)}, plus delivery at {_gbp(quote.delivery_cost)}."
    else:
        delivery_line = f"That comes to {_gbp(quote.subtotal)} all in — free delivery as usual for you."
    return f"""{_WRAPPER_OPEN}
<p>Hi {escape(_first_name(buyer_name))},</p>
<p>Good to hear from you! Here's what we can do on {escape(rfq.reference_number)}:</p>
<p>{item_lines}</p>
<p>{delivery_line}</p>
<p>We can get this to you within {quote.lead_time_days} working days, probably sooner as we've got good stock at the moment.</p>
<p>Standard {escape(quote.payment_terms)} terms apply. Quote's good for {escape(quote.validity)}.</p>
<p>Give me a shout if you need anything else.</p>
<p>Cheers,<br/><strong>{escape(supplier.contact_name)}</strong><br/>{escape(supplier.name)}</p>
</div>"""


def render_anixter_reply(
    rfq: RFQ, supplier: Supplier, quote: QuoteDraft, *, buyer_name: str = DEFAULT_BUYER_NAME
) -> str:
    quote_ref = f"WESCO-{100000 + (_reference_digits(rfq) * 7919) % 900000}"
    rows = [
        [
            str(i + 1),
            item.name,
            item.sku,
            f"{item.qty:,}",
            _gbp(item.unit_price),
            _gbp(item.total),
        ]
        for i, item in enumerate(quote.items)
    ]
    table = html_table(["#", "Description", "Part No.", "Qty", "Unit Price", "Line Total"], rows)
    return f"""{_WRAPPER_OPEN}
<p>Dear Mr {escape(_last_name(buyer_name))},</p>
<p>Re: {escape(rfq.reference_number)}</p>
<p>Please find below our formal quotation reference <strong>{quote_ref}</strong>:</p>
{table}
<p>Subtotal: {_gbp(quote.subtotal)}<br/>
Delivery charge: {_gbp(quote.delivery_cost)}<br/>
Total: {_gbp(quote.subtotal + quote.delivery_cost)}</p>
<p>Delivery: {quote.lead_time_days} working days from order confirmation<br/>
Payment terms: {escape(quote.payment_terms)}<br/>
Quotation validity: {escape(quote.validity)}</p>
<p style="font-size:11px;color:#666;">TERMS AND CONDITIONS:<br/>
- All prices are exclusive of VAT<br/>
- Prices are valid for the quantities quoted<br/>
- Delivery dates are estimates and may vary based on stock availability<br/>
- Returns subject to a 15% restocking charge</p>
<p>Kind regards,<br/><strong>{escape(supplier.contact_name)}</strong><br/>Senior Account Manager<br/>Anixter (WESCO International)</p>
</div>"""


HOUSE_STYLES: Dict[str, Renderer] = {
    "sup-001": render_rs_components_reply,
    "sup-002": render_wurth_reply,
    "sup-003": render_fabory_reply,
    "sup-004": render_brammer_reply,
    "sup-005": render_anixter_reply,
}


def render_supplier_reply(
    rfq: RFQ,
    supplier: Supplier,
    quote: QuoteDraft,
    *,
    buyer_name: str = DEFAULT_BUYER_NAME,
    eur_per_gbp: float = DEFAULT_EUR_PER_GBP,
) -> str:
    """Render ``quote`` in the supplier's house style (RS Components by default)."""

    renderer = HOUSE_STYLES.get(supplier.id, render_rs_components_reply)
    if renderer is render_wurth_reply:
        return renderer(rfq, supplier, quote, buyer_name=buyer_name, eur_per_gbp=eur_per_gbp)
    return renderer(rfq, supplier, quote, buyer_name=buyer_name)


__all__ = [
    "HOUSE_STYLES",
    "html_table",
    "render_rs_components_reply",
    "render_wurth_reply",
    "render_fabory_reply",
    "render_brammer_reply",
    "render_anixter_reply",
    "render_supplier_reply",
]
