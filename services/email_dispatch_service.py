"""Outbound dispatch of negotiation correspondence."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from utils.exceptions import DispatchError

from .email_service import EmailSendResult, EmailService

logger = logging.getLogger(__name__)


class EmailDispatchService:
    """Wrap :class:`EmailService` with recipient hygiene and failure policy.

    Buyer-side correspondence (RFQs, reminders, purchase orders, rejections)
    is best-effort and goes through :meth:`dispatch`, which never raises.
    Simulated supplier replies must actually be delivered before they are
    captured, so the simulator uses :meth:`dispatch_or_raise`.
    """

    def __init__(self, settings, email_service: Optional[EmailService] = None):
        self.settings = settings
        self.email_service = email_service or EmailService(settings)
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def dispatch(
        self,
        subject: str,
        body: str,
        recipients: Optional[Iterable[str]],
        *,
        sender: Optional[str] = None,
        from_name: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        """Send an email, logging and swallowing any delivery failure."""

        try:
            self.dispatch_or_raise(
                subject,
                body,
                recipients,
                sender=sender,
                from_name=from_name,
                headers=headers,
            )
        except DispatchError as exc:
            self.logger.warning("Email '%s' was not dispatched: %s", subject, exc)
            return False
        return True

    def dispatch_or_raise(
        self,
        subject: str,
        body: str,
        recipients: Optional[Iterable[str]],
        *,
        sender: Optional[str] = None,
        from_name: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> EmailSendResult:
        recipient_list = self._normalise_recipients(recipients)
        if not recipient_list:
            raise DispatchError(f"No recipient for email '{subject}'")

        sender_email = str(
            sender or getattr(self.settings, "ses_default_sender", "") or ""
        ).strip()
        if not sender_email:
            raise DispatchError("Sender email address is required")

        try:
            result = self.email_service.send_email(
                subject,
                body,
                recipient_list,
                sender_email,
                from_name,
                headers=headers,
            )
        except Exception as exc:
            raise DispatchError(f"Email '{subject}' failed: {exc}") from exc

        if not result.success:
            raise DispatchError(f"Email '{subject}' was rejected by the transport")

        logger.info(
            "Dispatched '%s' to %s (message id %s)",
            subject,
            ", ".join(recipient_list),
            result.message_id,
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _normalise_recipients(recipients: Optional[Iterable[str]]) -> List[str]:
        if recipients is None:
            return []
        if isinstance(recipients, str):
            items: Iterable[str] = [recipients]
        else:
            items = recipients

        values: List[str] = []
        seen_lower: set[str] = set()
        for value in items:
            if not isinstance(value, str):
                continue
            candidate = value.strip()
            if not candidate:
                continue
            candidate_lower = candidate.lower()
            if candidate_lower in seen_lower:
                continue
            seen_lower.add(candidate_lower)
            values.append(candidate)
        return values
