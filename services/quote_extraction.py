"""Turn supplier reply emails into structured quote drafts.

Suppliers answer an RFQ in their own house style: HTML tables, inline
dual-currency lines, or chatty dash lists.  Extraction runs in two
independent passes over the flattened body:

* every line is offered to an ordered tuple of line matchers; the first one
  that recognises the line produces an :class:`ExtractedLineItem`;
* document-level terms (subtotal, delivery cost, lead time, payment terms,
  validity) are searched for across the whole text.

Extraction is best-effort and never raises.  A body nothing recognises gives
an empty :class:`QuoteDraft`.  New house styles are supported by appending a
matcher to :data:`LINE_MATCHERS`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from html.parser import HTMLParser
from typing import Iterable, List, Optional, Sequence, Tuple

from models.negotiation import ExtractedLineItem, QuoteDraft, RFQItem

logger = logging.getLogger(__name__)

DOMESTIC_CURRENCY = "£"

_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)"
_CURRENCY_AMOUNT_RE = re.compile(r"([£€])\s*" + _AMOUNT)
_CURRENCY_CELL_RE = re.compile(r"^[£€]\s*" + _AMOUNT + r"$")
_INTEGER_CELL_RE = re.compile(r"^\d[\d,]*$")
_NUMERIC_CELL_RE = re.compile(r"^[£€]?\s*\d[\d,]*(?:\.\d+)?$")
_DASHES = "[—–-]"


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Parse ``1,234.50`` style figures; ``None`` when not a number."""

    if text is None:
        return None
    cleaned = str(text).replace(",", "").strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _parse_quantity(text: str) -> Optional[int]:
    cleaned = str(text).replace(",", "").strip()
    if not cleaned.isdigit():
        return None
    return int(cleaned)


def _line_total(qty: int, unit_price: float, stated: Optional[float]) -> float:
    if stated is not None:
        return stated
    return round(qty * unit_price, 2)


# ----------------------------------------------------------------------
# HTML flattening
# ----------------------------------------------------------------------
class _QuoteHTMLFlattener(HTMLParser):
    """Collapse reply HTML into delimited plain-text lines."""

    _BLOCK_TAGS = {
        "p", "div", "li", "ul", "ol", "table", "thead", "tbody",
        "h1", "h2", "h3", "h4", "h5", "h6",
    }
    _SKIP_TAGS = {"style", "script", "head"}

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs) -> None:
        tag = tag.lower()
        if tag in self._SKIP_TAGS:
            self._skip_depth += 1
        elif tag == "br" or tag in self._BLOCK_TAGS or tag == "tr":
            self._parts.append("\n")
        elif tag in {"td", "th"}:
            self._parts.append(" | ")

    def handle_startendtag(self, tag, attrs) -> None:
        if tag.lower() == "br":
            self._parts.append("\n")

    def handle_endtag(self, tag) -> None:
        tag = tag.lower()
        if tag in self._SKIP_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag == "tr":
            self._parts.append(" |\n")
        elif tag in self._BLOCK_TAGS:
            self._parts.append("\n")

    def handle_data(self, data: str) -> None:
        if data and not self._skip_depth:
            self._parts.append(data)

    @property
    def text(self) -> str:
        return "".join(self._parts)


def looks_like_html(body: str) -> bool:
    return "<" in body and ">" in body


def flatten_body(body: Optional[str]) -> List[str]:
    """Return the non-empty, whitespace-normalised lines of ``body``."""

    text = body or ""
    if looks_like_html(text):
        parser = _QuoteHTMLFlattener()
        parser.feed(text)
        parser.close()
        text = parser.text
    lines = []
    for raw_line in text.replace("\r", "").split("\n"):
        line = " ".join(raw_line.replace("\xa0", " ").split())
        if line:
            lines.append(line)
    return lines


# ----------------------------------------------------------------------
# Line matchers
# ----------------------------------------------------------------------
class DelimitedRowMatcher:
    """Pipe-delimited table rows.

    Handles ``| 1 | Name | 500 | £0.42 | £210.00 |`` as well as the shorter
    ``Name | 500 | £0.42 | £210.00``.  The quantity is the integer cell just
    before the first price; any cell between the description and the
    quantity is treated as the supplier's part number.  Header rows carry no
    price cell and never match.
    """

    name = "delimited-row"

    def parse_line(self, line: str) -> Optional[ExtractedLineItem]:
        if "|" not in line:
            return None
        cells = [cell.strip() for cell in line.split("|")]
        cells = [cell for cell in cells if cell]
        price_indexes = [i for i, cell in enumerate(cells) if _CURRENCY_CELL_RE.match(cell)]
        if not price_indexes:
            return None

        first_price = price_indexes[0]
        qty_index = first_price - 1
        if qty_index < 0 or not _INTEGER_CELL_RE.match(cells[qty_index]):
            return None
        qty = _parse_quantity(cells[qty_index])
        if not qty:
            return None

        name_index = None
        for index in range(qty_index):
            if not _NUMERIC_CELL_RE.match(cells[index]):
                name_index = index
                break
        if name_index is None:
            return None

        unit_price = parse_amount(_CURRENCY_CELL_RE.match(cells[first_price]).group(1))
        if unit_price is None:
            return None
        stated_total = None
        if len(price_indexes) > 1:
            stated_total = parse_amount(
                _CURRENCY_CELL_RE.match(cells[price_indexes[-1]]).group(1)
            )

        sku = " ".join(cells[name_index + 1 : qty_index])
        return ExtractedLineItem(
            name=cells[name_index],
            qty=qty,
            unit_price=unit_price,
            total=_line_total(qty, unit_price, stated_total),
            sku=sku,
        )


class DualCurrencyInlineMatcher:
    """``Item 1: Name — 500 pcs — €0.49/pc (£0.42) — €243.60``.

    The bracketed domestic figure is the unit price and the line total is
    recomputed from it, ignoring the foreign-currency total.
    """

    name = "dual-currency-inline"

    _PATTERN = re.compile(
        r"Item\s*\d+\s*:\s*(?P<name>.+?)\s*" + _DASHES
        + r"\s*(?P<qty>\d[\d,]*)\s*pcs?\s*" + _DASHES
        + r"\s*[£€]\s*" + _AMOUNT + r"\s*/\s*pc\s*\(\s*(?:approx\.?\s*)?[£€]\s*(?P<unit>\d[\d,]*(?:\.\d+)?)\s*\)",
        re.IGNORECASE,
    )

    def parse_line(self, line: str) -> Optional[ExtractedLineItem]:
        match = self._PATTERN.search(line)
        if not match:
            return None
        qty = _parse_quantity(match.group("qty"))
        unit_price = parse_amount(match.group("unit"))
        if not qty or unit_price is None:
            return None
        return ExtractedLineItem(
            name=match.group("name").strip(),
            qty=qty,
            unit_price=unit_price,
            total=round(qty * unit_price, 2),
        )


class DashListMatcher:
    """``- Name: 500 units at £0.42 each = £210.00``."""

    name = "dash-list"

    _PATTERN = re.compile(
        r"^[-•*]\s*(?P<name>.+?)\s*:\s*(?P<qty>\d[\d,]*)\s*units?\s+at\s+[£€]\s*"
        r"(?P<unit>\d[\d,]*(?:\.\d+)?)\s*each"
        r"(?:\s*=\s*[£€]\s*(?P<total>\d[\d,]*(?:\.\d+)?))?",
        re.IGNORECASE,
    )

    def parse_line(self, line: str) -> Optional[ExtractedLineItem]:
        match = self._PATTERN.search(line)
        if not match:
            return None
        qty = _parse_quantity(match.group("qty"))
        unit_price = parse_amount(match.group("unit"))
        if not qty or unit_price is None:
            return None
        return ExtractedLineItem(
            name=match.group("name").strip(),
            qty=qty,
            unit_price=unit_price,
            total=_line_total(qty, unit_price, parse_amount(match.group("total"))),
        )


LINE_MATCHERS: Tuple[object, ...] = (
    DelimitedRowMatcher(),
    DualCurrencyInlineMatcher(),
    DashListMatcher(),
)


def extract_line_items(
    lines: Iterable[str], matchers: Sequence[object] = LINE_MATCHERS
) -> List[ExtractedLineItem]:
    items: List[ExtractedLineItem] = []
    for line in lines:
        for matcher in matchers:
            item = matcher.parse_line(line)
            if item is not None:
                items.append(item)
                break
    return items


# ----------------------------------------------------------------------
# Document-level terms
# ----------------------------------------------------------------------
_SUBTOTAL_RE = re.compile(
    r"\bsubtotal\s*:\s*([£€])\s*" + _AMOUNT
    + r"(?:\s*\(\s*(?:approx\.?\s*)?([£€])\s*" + _AMOUNT + r"\s*\))?",
    re.IGNORECASE,
)
_TOTAL_RE = re.compile(
    r"(?<![a-z])total\s*:\s*([£€])\s*" + _AMOUNT
    + r"(?:\s*\(\s*(?:approx\.?\s*)?([£€])\s*" + _AMOUNT + r"\s*\))?",
    re.IGNORECASE,
)
_FREE_DELIVERY_RE = re.compile(
    r"(?:delivery|shipping)\s*:\s*free|free\s+(?:delivery|shipping)", re.IGNORECASE
)
_DELIVERY_COST_RE = re.compile(
    r"(?:delivery|shipping)[^£€\n]*[£€]\s*" + _AMOUNT, re.IGNORECASE
)
_LEAD_TIME_RES = (
    re.compile(r"lead\s*time\s*:?\s*(\d+)", re.IGNORECASE),
    re.compile(r"\bdelivery\s*:\s*(\d+)\s*(?:working\s+)?days?", re.IGNORECASE),
    re.compile(r"\bwithin\s+(\d+)\s*(?:working\s+)?days?", re.IGNORECASE),
)
_PAYMENT_RES = (
    re.compile(r"payment(?:\s+terms)?\s*:\s*net\s*(\d+)", re.IGNORECASE),
    re.compile(r"\bnet\s*(\d+)\s+terms\b", re.IGNORECASE),
)
_VALIDITY_RES = (
    re.compile(r"\bvalid(?:ity)?(?:\s+for)?\s*:?\s*(\d+)\s*(days?)\b", re.IGNORECASE),
    re.compile(r"\bgood\s+for\s+(\d+)\s*(days?)\b", re.IGNORECASE),
)


def _summary_figure(match: "re.Match[str]", domestic: str) -> Optional[float]:
    currency, amount, bracket_currency, bracket_amount = match.groups()
    if currency != domestic and bracket_currency == domestic:
        return parse_amount(bracket_amount)
    return parse_amount(amount)


def find_subtotal(text: str, domestic: str = DOMESTIC_CURRENCY) -> Optional[float]:
    """Document subtotal; ``Subtotal:`` wins over ``Total:``."""

    for pattern in (_SUBTOTAL_RE, _TOTAL_RE):
        match = pattern.search(text)
        if match:
            figure = _summary_figure(match, domestic)
            if figure is not None:
                return figure
    return None


def find_delivery_cost(lines: Sequence[str]) -> float:
    text = "\n".join(lines)
    if _FREE_DELIVERY_RE.search(text):
        return 0.0
    for line in lines:
        match = _DELIVERY_COST_RE.search(line)
        if match:
            value = parse_amount(match.group(1))
            if value is not None:
                return value
    return 0.0


def find_lead_time(text: str) -> int:
    for pattern in _LEAD_TIME_RES:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return 0


def find_payment_terms(text: str) -> str:
    for pattern in _PAYMENT_RES:
        match = pattern.search(text)
        if match:
            return f"Net {int(match.group(1))}"
    return ""


def find_validity(text: str) -> str:
    for pattern in _VALIDITY_RES:
        match = pattern.search(text)
        if match:
            return f"{int(match.group(1))} {match.group(2).lower()}"
    return ""


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------
def extract_quote_from_email(
    raw_body: Optional[str],
    *,
    matchers: Sequence[object] = LINE_MATCHERS,
    domestic_currency: str = DOMESTIC_CURRENCY,
) -> QuoteDraft:
    """Extract a :class:`QuoteDraft` from a supplier reply body (HTML or text)."""

    lines = flatten_body(raw_body)
    if not lines:
        return QuoteDraft()

    items = extract_line_items(lines, matchers)
    text = "\n".join(lines)

    stated_subtotal = find_subtotal(text, domestic_currency)
    if stated_subtotal is not None:
        subtotal = round(stated_subtotal, 2)
    else:
        subtotal = round(sum(item.total for item in items), 2)

    draft = QuoteDraft(
        items=tuple(items),
        subtotal=subtotal,
        subtotal_stated=stated_subtotal is not None,
        delivery_cost=find_delivery_cost(lines),
        lead_time_days=find_lead_time(text),
        payment_terms=find_payment_terms(text),
        validity=find_validity(text),
    )
    logger.debug(
        "Extracted %d line item(s), subtotal %.2f, delivery %.2f",
        len(draft.items),
        draft.subtotal,
        draft.delivery_cost,
    )
    return draft


def match_items_to_rfq(draft: QuoteDraft, rfq_items: Sequence[RFQItem]) -> QuoteDraft:
    """Relabel extracted items with the SKU and name of the RFQ line they answer.

    An item matches on its part number, then on exact name, then when either
    name contains the first ten characters of the other.  Unmatched items are
    left as extracted.
    """

    if not rfq_items or not draft.items:
        return draft

    def _resolve(item: ExtractedLineItem) -> Optional[RFQItem]:
        if item.sku:
            for rfq_item in rfq_items:
                if rfq_item.sku and rfq_item.sku.lower() == item.sku.lower():
                    return rfq_item
        extracted_name = item.name.strip().lower()
        for rfq_item in rfq_items:
            if rfq_item.name.strip().lower() == extracted_name:
                return rfq_item
        for rfq_item in rfq_items:
            rfq_name = rfq_item.name.strip().lower()
            if extracted_name[:10] in rfq_name or rfq_name[:10] in extracted_name:
                return rfq_item
        return None

    matched = []
    for item in draft.items:
        rfq_item = _resolve(item)
        if rfq_item is None:
            matched.append(item)
        else:
            matched.append(replace(item, sku=rfq_item.sku, name=rfq_item.name))
    return replace(draft, items=tuple(matched))


__all__ = [
    "DelimitedRowMatcher",
    "DualCurrencyInlineMatcher",
    "DashListMatcher",
    "LINE_MATCHERS",
    "extract_quote_from_email",
    "extract_line_items",
    "flatten_body",
    "match_items_to_rfq",
    "parse_amount",
]
