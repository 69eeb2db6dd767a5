"""Error taxonomy shared by the negotiation store, workflow and API."""

from __future__ import annotations


class NegotiationError(RuntimeError):
    """Base class for failures raised by the negotiation core."""


class ValidationError(NegotiationError):
    """Required input is missing or empty (e.g. an RFQ without items)."""


class NotFoundError(NegotiationError):
    """An RFQ, supplier, quote or order reference could not be resolved."""


class PreconditionFailedError(NegotiationError):
    """The operation is not allowed in the current state."""


class DispatchError(NegotiationError):
    """Outbound email could not be sent.

    Never fatal to the operation that triggered the send; callers log it and
    carry on.
    """


__all__ = [
    "NegotiationError",
    "ValidationError",
    "NotFoundError",
    "PreconditionFailedError",
    "DispatchError",
]
