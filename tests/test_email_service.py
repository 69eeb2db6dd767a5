import json
import os
import smtplib
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, call, patch

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from services.email_service import EmailService


def _settings(**overrides):
    defaults = {
        "email_transport": "smtp",
        "ses_smtp_secret_name": "ses/smtp/credentials",
        "ses_region": "eu-west-1",
        "ses_smtp_endpoint": "email-smtp.eu-west-1.amazonaws.com",
        "ses_smtp_port": 587,
    }
    defaults.update(overrides)
    return SimpleNamespace(**defaults)


def _secret_payload(username: str = "user", password: str = "pass") -> str:
    return json.dumps({"SMTP_USERNAME": username, "SMTP_PASSWORD": password})


def _smtp_session(login_error=None):
    session = MagicMock()
    session.__enter__.return_value = session
    session.__exit__.return_value = False
    if login_error is not None:
        session.login.side_effect = login_error
    return session


def test_fetch_smtp_credentials_uses_secrets_manager():
    service = EmailService(_settings())

    secrets_client = MagicMock()
    secrets_client.get_secret_value.return_value = {"SecretString": _secret_payload()}

    with patch("services.email_service.boto3.client", return_value=secrets_client) as client_mock:
        username, password = service._fetch_smtp_credentials()

    assert username == "user"
    assert password == "pass"
    client_mock.assert_called_once_with("secretsmanager", region_name="eu-west-1")
    secrets_client.get_secret_value.assert_called_once_with(
        SecretId="ses/smtp/credentials", VersionStage="AWSCURRENT"
    )


def test_fetch_smtp_credentials_rejects_incomplete_secret():
    service = EmailService(_settings())

    secrets_client = MagicMock()
    secrets_client.get_secret_value.return_value = {
        "SecretString": json.dumps({"SMTP_USERNAME": "user"})
    }

    with patch("services.email_service.boto3.client", return_value=secrets_client):
        with pytest.raises(ValueError):
            service._fetch_smtp_credentials(version_stage="AWSPREVIOUS")


def test_send_email_over_smtp_adds_custom_headers():
    service = EmailService(_settings())
    session = _smtp_session()

    with patch.object(
        service, "_fetch_smtp_credentials", return_value=("user", "pass")
    ), patch("services.email_service.smtplib.SMTP", return_value=session) as smtp_mock:
        result = service.send_email(
            subject="RFQ-0092 — Request for Quotation",
            body="<p>Hello</p>",
            recipients=["sales@rs.example.com"],
            sender="procurement@example.com",
            from_name="James Cooper",
            headers={"X-Hexa-RFQ-Reference": "RFQ-0092"},
        )

    assert result.success is True
    assert result.message_id.endswith("@example.com>")
    smtp_mock.assert_called_once_with("email-smtp.eu-west-1.amazonaws.com", 587)
    session.starttls.assert_called_once()
    session.login.assert_called_once_with("user", "pass")
    sender, recipients, payload = session.sendmail.call_args[0]
    assert sender == "procurement@example.com"
    assert recipients == ["sales@rs.example.com"]
    assert "X-Hexa-RFQ-Reference: RFQ-0092" in payload
    assert "James Cooper <procurement@example.com>" in payload


def test_send_email_retries_with_previous_secret_on_auth_failure():
    service = EmailService(_settings())
    first_smtp = _smtp_session(smtplib.SMTPAuthenticationError(535, b"Invalid"))
    second_smtp = _smtp_session()

    with patch.object(
        service,
        "_fetch_smtp_credentials",
        side_effect=[("user", "pass"), ("legacy", "secret")],
    ) as fetch_mock, patch("services.email_service.smtplib.SMTP") as smtp_mock:
        smtp_mock.side_effect = [first_smtp, second_smtp]

        result = service.send_email(
            subject="Test",
            body="<p>Hello</p>",
            recipients=["to@example.com"],
            sender="from@example.com",
        )

    assert result.success is True
    assert result.message_id
    assert fetch_mock.call_args_list[0] == call()
    assert fetch_mock.call_args_list[1] == call(version_stage="AWSPREVIOUS")
    first_smtp.sendmail.assert_not_called()
    second_smtp.login.assert_called_once_with("legacy", "secret")
    second_smtp.sendmail.assert_called_once()


def test_send_email_returns_false_when_retry_also_fails_authentication():
    service = EmailService(_settings())
    auth_error = smtplib.SMTPAuthenticationError(535, b"Invalid")

    with patch.object(
        service,
        "_fetch_smtp_credentials",
        side_effect=[("user", "pass"), ("legacy", "secret")],
    ), patch("services.email_service.smtplib.SMTP") as smtp_mock:
        smtp_mock.side_effect = [_smtp_session(auth_error), _smtp_session(auth_error)]

        result = service.send_email(
            subject="Test",
            body="<p>Hello</p>",
            recipients=["to@example.com"],
            sender="from@example.com",
        )

    assert result.success is False
    assert result.message_id


def test_send_email_fails_when_credentials_unavailable():
    service = EmailService(_settings(ses_smtp_secret_name=""))

    with patch("services.email_service.smtplib.SMTP") as smtp_mock:
        result = service.send_email("Test", "<p>Hello</p>", ["to@example.com"], "from@example.com")

    assert result.success is False
    smtp_mock.assert_not_called()


def test_log_transport_records_message_without_network():
    service = EmailService(_settings(email_transport="log"))

    with patch("services.email_service.smtplib.SMTP") as smtp_mock, patch(
        "services.email_service.boto3.client"
    ) as client_mock:
        result = service.send_email(
            "Test", "<p>Hello</p>", "to@example.com", "from@example.com", "Sarah Mitchell"
        )

    assert result.success is True
    smtp_mock.assert_not_called()
    client_mock.assert_not_called()
    assert list(service.sent_messages) == [
        {
            "subject": "Test",
            "body": "<p>Hello</p>",
            "recipients": ["to@example.com"],
            "sender": "from@example.com",
            "from_name": "Sarah Mitchell",
            "message_id": result.message_id,
        }
    ]


def test_send_email_without_recipients_fails():
    service = EmailService(_settings(email_transport="log"))

    result = service.send_email("Test", "<p>Hello</p>", [None, ""], "from@example.com")

    assert result.success is False
    assert not service.sent_messages


def test_connection_failure_is_not_retried(caplog):
    service = EmailService(_settings())

    with patch.object(
        service, "_fetch_smtp_credentials", return_value=("user", "pass")
    ) as fetch_mock, patch(
        "services.email_service.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")
    ):
        result = service.send_email("Test", "<p>Hello</p>", ["to@example.com"], "from@example.com")

    assert result.success is False
    fetch_mock.assert_called_once_with()
    assert "Email send to to@example.com failed" in caplog.text


def test_log_transport_keeps_only_recent_messages():
    service = EmailService(_settings(email_transport="log", email_log_history=2))

    for n in range(3):
        service.send_email(f"Message {n}", "<p>Hello</p>", "to@example.com", "from@example.com")

    assert [m["subject"] for m in service.sent_messages] == ["Message 1", "Message 2"]
