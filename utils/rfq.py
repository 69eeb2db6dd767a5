from __future__ import annotations

import uuid


def generate_identifier() -> str:
    """Return an opaque identifier for RFQs, quotes and orders."""

    return str(uuid.uuid4())


def format_rfq_reference(number: int) -> str:
    """Return the human reference for RFQ ``number`` (``RFQ-0092``)."""

    return f"RFQ-{int(number):04d}"


def format_po_reference(number: int) -> str:
    """Return the purchase order reference for ``number`` (``PO-01001``)."""

    return f"PO-{int(number):05d}"
