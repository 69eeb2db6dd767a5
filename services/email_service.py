import json
import logging
import smtplib
import ssl
from collections import deque
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Deque, Dict, Iterable, List, Optional, Tuple, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

# Secrets Manager stage tried after the current SMTP credentials are rejected
PREVIOUS_SECRET_STAGE = "AWSPREVIOUS"

_CREDENTIAL_ERRORS = (RuntimeError, ValueError)
_DELIVERY_ERRORS = (smtplib.SMTPException, OSError)


@dataclass
class EmailSendResult:
    """Outcome of a send attempt."""

    success: bool
    message_id: Optional[str] = None


def _normalise_recipients(recipients: Union[str, Iterable[Optional[str]], None]) -> List[str]:
    if not recipients:
        return []
    if isinstance(recipients, str):
        return [recipients]
    return [r for r in recipients if r]


def _sender_domain(sender: str) -> Optional[str]:
    if not sender or "@" not in sender:
        return None
    return sender.split("@", 1)[-1].strip() or None


class EmailService:
    """Send HTML email through Amazon SES or the application log.

    ``email_transport`` selects the delivery path.  ``smtp`` talks to the SES
    SMTP endpoint with credentials held in AWS Secrets Manager; ``log`` writes
    the message to the logger and reports success, which is what demos and
    tests run with.  The most recent ``email_log_history`` messages accepted
    by the ``log`` transport are kept in :attr:`sent_messages`.
    """

    def __init__(self, settings):
        self.settings = settings
        self.transport = str(getattr(settings, "email_transport", "log") or "log").lower()
        history = int(getattr(settings, "email_log_history", 200) or 200)
        self.sent_messages: Deque[Dict[str, object]] = deque(maxlen=history)

    def send_email(
        self,
        subject: str,
        body: str,
        recipients: Union[str, Iterable[str]],
        sender: str,
        from_name: Optional[str] = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        message_id: Optional[str] = None,
    ) -> EmailSendResult:
        """Send ``body`` as an HTML message to ``recipients``.

        ``headers`` lets callers attach extra RFC-2822 headers such as
        ``X-Hexa-RFQ-Reference``.  ``message_id`` keeps the identifier stable
        when a caller retries.  Delivery problems are logged and reported
        through :class:`EmailSendResult`; nothing is raised.
        """

        recipient_list = _normalise_recipients(recipients)
        if not recipient_list:
            logger.error("Email '%s' has no recipients", subject)
            return EmailSendResult(False, None)

        msg = self._build_message(subject, body, recipient_list, sender, from_name, headers)
        if message_id:
            msg.replace_header("Message-ID", message_id)
        msg_id = msg["Message-ID"]

        if self.transport == "log":
            self._record(subject, body, recipient_list, sender, from_name, msg_id)
            return EmailSendResult(True, msg_id)

        delivered = self._send_over_ses(msg.as_string(), sender, recipient_list)
        return EmailSendResult(delivered, msg_id)

    def _build_message(
        self,
        subject: str,
        body: str,
        recipients: List[str],
        sender: str,
        from_name: Optional[str],
        headers: Optional[Dict[str, str]],
    ) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["Subject"] = subject
        msg["From"] = formataddr((from_name, sender)) if from_name else sender
        msg["To"] = ", ".join(recipients)
        msg["Message-ID"] = make_msgid(domain=_sender_domain(sender))
        msg["Date"] = formatdate(localtime=True)
        for key, value in (headers or {}).items():
            if key and value is not None:
                msg[str(key)] = str(value)
        msg.attach(MIMEText(body, "html"))
        return msg

    def _record(
        self,
        subject: str,
        body: str,
        recipients: List[str],
        sender: str,
        from_name: Optional[str],
        message_id: str,
    ) -> None:
        self.sent_messages.append(
            {
                "subject": subject,
                "body": body,
                "recipients": list(recipients),
                "sender": sender,
                "from_name": from_name,
                "message_id": message_id,
            }
        )
        logger.info(
            "Email '%s' from %s to %s recorded (message id %s)",
            subject,
            sender,
            ", ".join(recipients),
            message_id,
        )

    def _send_over_ses(self, payload: str, sender: str, recipients: List[str]) -> bool:
        """Deliver with the current SMTP secret, then once with the previous one.

        SES rotates SMTP credentials through Secrets Manager; for a short
        window after a rotation only the previous stage may be accepted.
        """

        try:
            credentials = self._fetch_smtp_credentials()
        except _CREDENTIAL_ERRORS as exc:
            logger.error("Unable to retrieve SMTP credentials: %s", exc)
            return False

        try:
            self._deliver_via_smtp(payload, sender, recipients, *credentials)
            return True
        except smtplib.SMTPAuthenticationError:
            logger.warning(
                "SES rejected the current SMTP credentials; retrying with %s",
                PREVIOUS_SECRET_STAGE,
            )
        except _DELIVERY_ERRORS as exc:
            logger.error("Email send to %s failed: %s", ", ".join(recipients), exc)
            return False

        try:
            credentials = self._fetch_smtp_credentials(version_stage=PREVIOUS_SECRET_STAGE)
            self._deliver_via_smtp(payload, sender, recipients, *credentials)
        except _CREDENTIAL_ERRORS + _DELIVERY_ERRORS as exc:
            logger.error("Fallback SES SMTP credentials failed: %s", exc)
            return False
        return True

    def _fetch_smtp_credentials(self, *, version_stage: str = "AWSCURRENT") -> Tuple[str, str]:
        """Return ``(username, password)`` from the configured SES secret.

        Raises ``ValueError`` for a missing or malformed secret and
        ``RuntimeError`` when Secrets Manager cannot be reached.
        """

        secret_name = getattr(self.settings, "ses_smtp_secret_name", None)
        if not secret_name:
            raise ValueError("SES SMTP secret name is not configured")
        region = getattr(self.settings, "ses_region", None) or "eu-west-1"

        try:
            client = boto3.client("secretsmanager", region_name=region)
            response = client.get_secret_value(SecretId=secret_name, VersionStage=version_stage)
        except (ClientError, BotoCoreError) as exc:
            raise RuntimeError(f"Failed to retrieve SES SMTP secret '{secret_name}'") from exc

        secret_string = response.get("SecretString")
        if not secret_string:
            raise ValueError("Secret does not contain a SecretString payload")
        try:
            payload = json.loads(secret_string)
        except json.JSONDecodeError as exc:
            raise ValueError("Secret payload is not valid JSON") from exc

        username = str(payload.get("SMTP_USERNAME") or payload.get("smtp_username") or "").strip()
        password = str(payload.get("SMTP_PASSWORD") or payload.get("smtp_password") or "").strip()
        if not username or not password:
            raise ValueError(f"Secret payload missing SMTP credentials for stage {version_stage}")
        return username, password

    def _deliver_via_smtp(
        self,
        payload: str,
        sender: str,
        recipients: List[str],
        username: str,
        password: str,
    ) -> None:
        with smtplib.SMTP(self.settings.ses_smtp_endpoint, self.settings.ses_smtp_port) as server:
            server.ehlo()
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
            server.login(username, password)
            server.sendmail(sender, recipients, payload)
