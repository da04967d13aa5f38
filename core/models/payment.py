"""Payment domain models.

Payments are append-only. The fee breakdown is computed once, when the
payment is recorded, and stored with it; a later change to the fee schedule
never rewrites history.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from utils.money import from_cents


class PaymentMethod(str, Enum):
    """How the customer paid."""

    CARD = "card"
    ACH = "ach"
    CHECK = "check"
    CASH = "cash"


class PaymentStatus(str, Enum):
    """Settlement state reported by the gateway. Only settled payments are recorded."""

    COMPLETED = "completed"


class PaymentCreate(BaseModel):
    """
    A settled payment to record against an invoice.

    amount is in major units. external_transaction_id is the gateway's
    transaction reference and doubles as the idempotency key.
    """

    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    external_transaction_id: str = Field(..., min_length=1, max_length=255)


class Payment(BaseModel):
    """Full payment entity as stored. Immutable."""

    id: UUID
    tenant_id: UUID
    invoice_id: UUID
    amount_cents: int
    method: PaymentMethod
    processing_fee_cents: int
    platform_fee_cents: int
    net_amount_cents: int
    status: PaymentStatus
    external_transaction_id: str
    recorded_at: datetime

    model_config = {"from_attributes": True, "frozen": True}

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)

    @property
    def processing_fee(self) -> Decimal:
        return from_cents(self.processing_fee_cents)

    @property
    def platform_fee(self) -> Decimal:
        return from_cents(self.platform_fee_cents)

    @property
    def net_amount(self) -> Decimal:
        return from_cents(self.net_amount_cents)


class LedgerSummary(BaseModel):
    """Money-flow totals for one invoice, derived from its payments."""

    invoice_id: UUID
    payment_count: int
    gross_paid_cents: int
    processing_fees_cents: int
    platform_fees_cents: int
    net_settlement_cents: int
    total_cents: int
    balance_due_cents: int

    @property
    def net_settlement(self) -> Decimal:
        """What the merchant keeps after processor and platform fees."""
        return from_cents(self.net_settlement_cents)

    @property
    def balance_due(self) -> Decimal:
        return from_cents(self.balance_due_cents)


class TenantStats(BaseModel):
    """
    Tenant-wide money totals for the billing dashboard.

    Fee and settlement totals cover every recorded payment. outstanding_cents
    is the balance still due on SENT, PARTIALLY_PAID and OVERDUE invoices;
    drafts are not billed yet and count toward nothing but invoice_count.
    """

    tenant_id: UUID
    invoice_count: int = 0
    counts_by_status: dict[str, int] = Field(default_factory=dict)
    total_billed_cents: int = 0
    gross_collected_cents: int = 0
    processing_fees_cents: int = 0
    platform_fees_cents: int = 0
    net_settlement_cents: int = 0
    outstanding_cents: int = 0

    @property
    def gross_collected(self) -> Decimal:
        return from_cents(self.gross_collected_cents)

    @property
    def net_settlement(self) -> Decimal:
        return from_cents(self.net_settlement_cents)

    @property
    def outstanding(self) -> Decimal:
        return from_cents(self.outstanding_cents)
