"""Ledger configuration."""

import os
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from core.fees import FeeSchedule, ProcessorFee
from core.models import PaymentMethod

_ENV_PREFIX = "LEDGER_"


class LedgerConfig(BaseModel):
    """
    Ledger configuration.

    Rates are fractions (0.029 = 2.9%) except tax, which is stored in basis
    points like every persisted invoice (800 = 8%).
    """

    fees: FeeSchedule = Field(
        default_factory=FeeSchedule,
        description="Processor and platform fee schedule",
    )

    default_tax_rate_bps: int = Field(
        default=800,
        description="Tax rate applied when the caller does not pass one",
        ge=0,
        le=10000,
    )
    default_due_in_days: int = Field(
        default=14,
        description="Payment terms for new invoices",
        ge=0,
        le=365,
    )

    invoice_number_prefix: str = Field(
        default="INV",
        description="Prefix for human-readable invoice numbers",
        min_length=1,
        max_length=10,
    )
    payment_link_base_url: str = Field(
        default="https://pay.example.com/i",
        description="Base URL for generated payment links",
    )

    max_commit_retries: int = Field(
        default=5,
        description="Compare-and-swap attempts before a conflict is surfaced",
        ge=1,
        le=50,
    )

    storage: Literal["memory", "postgres"] = Field(
        default="memory",
        description="Repository backend",
    )

    api_host: str = Field(default="127.0.0.1", description="HTTP bind address")
    api_port: int = Field(default=8000, ge=1, le=65535, description="HTTP port")
    log_level: str = Field(default="INFO", description="Root logging level")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "LedgerConfig":
        """
        Build config from LEDGER_* environment variables.

        Unset variables keep their defaults. Invalid values raise
        pydantic.ValidationError at startup rather than at first payment.

        Per-method processor pricing comes from
        LEDGER_FEE_OVERRIDE_<METHOD>_RATE and
        LEDGER_FEE_OVERRIDE_<METHOD>_FIXED_CENTS (METHOD is CARD, ACH, CHECK
        or CASH). Setting either one overrides that method; the other
        defaults to zero.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(_ENV_PREFIX + name)

        overrides = {}
        for method in PaymentMethod:
            key = f"FEE_OVERRIDE_{method.name}"
            rate, fixed = get(f"{key}_RATE"), get(f"{key}_FIXED_CENTS")
            if rate is None and fixed is None:
                continue
            overrides[method] = ProcessorFee(rate=rate or "0", fixed_fee_cents=fixed or 0)

        fee_values = {
            "processor_rate": get("PROCESSOR_RATE"),
            "processor_fixed_fee_cents": get("PROCESSOR_FIXED_FEE_CENTS"),
            "platform_rate": get("PLATFORM_RATE"),
        }
        fees = FeeSchedule(
            method_overrides=overrides,
            **{k: v for k, v in fee_values.items() if v is not None},
        )

        values = {
            "default_tax_rate_bps": get("DEFAULT_TAX_RATE_BPS"),
            "default_due_in_days": get("DEFAULT_DUE_IN_DAYS"),
            "invoice_number_prefix": get("INVOICE_NUMBER_PREFIX"),
            "payment_link_base_url": get("PAYMENT_LINK_BASE_URL"),
            "max_commit_retries": get("MAX_COMMIT_RETRIES"),
            "storage": get("STORAGE"),
            "api_host": get("API_HOST"),
            "api_port": get("API_PORT"),
            "log_level": get("LOG_LEVEL"),
        }
        return cls(fees=fees, **{k: v for k, v in values.items() if v is not None})

    @property
    def default_tax_rate(self) -> Decimal:
        return Decimal(self.default_tax_rate_bps) / 10000
