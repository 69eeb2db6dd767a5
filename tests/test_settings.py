import os
import sys

import pytest
from pydantic import ValidationError

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.settings import Settings


def test_defaults_match_demo_configuration():
    settings = Settings()

    assert settings.rfq_number_seed == 91
    assert settings.po_number_seed == 1000
    assert settings.non_responding_suppliers == ["sup-006"]
    assert settings.email_transport == "log"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("sup-005, sup-006", ["sup-005", "sup-006"]),
        ('["sup-004"]', ["sup-004"]),
        ("", []),
    ],
)
def test_non_responding_suppliers_accepts_json_or_csv(value, expected):
    assert Settings(non_responding_suppliers=value).non_responding_suppliers == expected


def test_email_transport_is_validated():
    assert Settings(email_transport=" SMTP ").email_transport == "smtp"
    with pytest.raises(ValidationError):
        Settings(email_transport="carrier-pigeon")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("sup-005,sup-006", ["sup-005", "sup-006"]),
        ('["sup-004", "sup-005"]', ["sup-004", "sup-005"]),
        ("", []),
    ],
)
def test_non_responding_suppliers_from_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("NON_RESPONDING_SUPPLIERS", raw)

    assert Settings().non_responding_suppliers == expected


def test_email_log_history_from_environment(monkeypatch):
    monkeypatch.setenv("EMAIL_LOG_HISTORY", "25")

    assert Settings().email_log_history == 25
