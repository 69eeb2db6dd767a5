# Hexa/config/settings.py

import json
import os
from typing import Annotated, Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
ENV_FILE_PATH = os.path.join(PROJECT_ROOT, '.env')


class Settings(BaseSettings):
    # Buyer identity used on outbound correspondence
    buyer_name: str = Field(default="James Cooper", env="BUYER_NAME")
    buyer_email: str = Field(default="buyer@example.com", env="BUYER_EMAIL")
    buyer_company: str = Field(
        default="Meridian Industrial Supplies", env="BUYER_COMPANY"
    )

    # RFQ defaults
    default_quote_deadline_days: int = Field(
        default=2, env="DEFAULT_QUOTE_DEADLINE_DAYS"
    )
    default_delivery_days: int = Field(default=7, env="DEFAULT_DELIVERY_DAYS")
    rfq_number_seed: int = Field(default=91, env="RFQ_NUMBER_SEED")
    po_number_seed: int = Field(default=1000, env="PO_NUMBER_SEED")
    domestic_currency_symbol: str = Field(
        default="£", env="DOMESTIC_CURRENCY_SYMBOL"
    )

    # Supplier reply simulation
    simulation_enabled: bool = Field(default=True, env="SIMULATION_ENABLED")
    supplier_reply_delay_seconds: float = Field(
        default=30.0, env="SUPPLIER_REPLY_DELAY_SECONDS"
    )
    # NoDecode hands the raw env string to the validator below
    non_responding_suppliers: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["sup-006"], env="NON_RESPONDING_SUPPLIERS"
    )
    supplier_sim_email: str = Field(
        default="supplier-sim@example.com", env="SUPPLIER_SIM_EMAIL"
    )
    eur_per_gbp: float = Field(default=1.16, env="EUR_PER_GBP")

    # Scheduler
    scheduler_poll_seconds: float = Field(default=0.5, env="SCHEDULER_POLL_SECONDS")
    scheduler_max_workers: int = Field(default=8, env="SCHEDULER_MAX_WORKERS")

    # Email settings
    email_transport: str = Field(default="log", env="EMAIL_TRANSPORT")
    email_log_history: int = Field(default=200, env="EMAIL_LOG_HISTORY")
    ses_smtp_secret_name: str = Field(
        default="ses/smtp/credentials", env="SES_SMTP_SECRET_NAME"
    )
    ses_smtp_endpoint: str = Field(
        default="email-smtp.eu-west-1.amazonaws.com", env="SES_SMTP_ENDPOINT"
    )
    ses_smtp_port: int = Field(default=587, env="SES_SMTP_PORT")
    ses_region: str = Field(default="eu-west-1", env="SES_REGION")
    ses_default_sender: str = Field(
        default="procurement@example.com", env="SES_DEFAULT_SENDER"
    )

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_dir: str = Field(default=os.path.join(PROJECT_ROOT, "logs"), env="LOG_DIR")

    class Config:
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'
        extra = "ignore"

    @field_validator("non_responding_suppliers", mode="before")
    @classmethod
    def _coerce_supplier_list(cls, value: Any) -> List[str]:
        """Accept JSON arrays or comma separated identifiers."""

        if value in (None, ""):
            return []
        if isinstance(value, str):
            text = value.strip()
            if text.startswith("["):
                try:
                    parsed = json.loads(text)
                except json.JSONDecodeError as exc:
                    raise ValueError("Value must be a valid JSON list") from exc
                if not isinstance(parsed, list):
                    raise ValueError("JSON value must decode to a list")
                return [str(item).strip() for item in parsed if str(item).strip()]
            return [part.strip() for part in text.split(",") if part.strip()]
        return [str(item).strip() for item in value if str(item).strip()]

    @field_validator("email_transport")
    @classmethod
    def _check_transport(cls, value: str) -> str:
        transport = str(value or "").strip().lower()
        if transport not in {"smtp", "log"}:
            raise ValueError("email_transport must be 'smtp' or 'log'")
        return transport


try:
    settings = Settings()
except Exception as e:
    print(f"!!! FATAL ERROR: Could not load application settings from .env file: {e}")
    raise
