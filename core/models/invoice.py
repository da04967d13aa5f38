"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. Tax rate is basis points (10000 = 100%).

Line totals and invoice totals are derived data: they are recomputed from
the line items every time a model is built, including rows read back from
storage, so a bad stored total can never leak into a balance.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import NamedTuple
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from utils.money import apply_bps, from_cents, round_half_up

logger = logging.getLogger(__name__)


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"


# Statuses that accept payments
PAYABLE_STATUSES = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
})

# Statuses the overdue sweep may move to OVERDUE
OVERDUE_ELIGIBLE_STATUSES = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
})


class InvoiceTotals(NamedTuple):
    subtotal_cents: int
    tax_cents: int
    total_cents: int


def compute_totals(items: list["LineItem"], tax_rate_bps: int) -> InvoiceTotals:
    """
    Pure recalculation of subtotal, tax and total from line items.

    Tax is rounded half-up to the cent on the subtotal, not per line.
    """
    subtotal = sum(item.line_total_cents for item in items)
    tax = apply_bps(subtotal, tax_rate_bps)
    return InvoiceTotals(subtotal, tax, subtotal + tax)


def derive_payment_status(
    current: InvoiceStatus,
    amount_paid_cents: int,
    total_cents: int,
) -> InvoiceStatus:
    """
    Status after a payment has been applied.

    Fully covered -> PAID, anything paid -> PARTIALLY_PAID, nothing paid ->
    unchanged.
    """
    if amount_paid_cents >= total_cents:
        return InvoiceStatus.PAID
    if amount_paid_cents > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return current


class LineItemCreate(BaseModel):
    """
    A line item as submitted by the caller.

    unit_price is in major units (dollars). Range checks happen in
    InvoiceService so they raise InvalidLineItemError rather than a
    pydantic error.
    """

    description: str = Field(..., max_length=500)
    quantity: Decimal = Decimal(1)
    unit_price: Decimal


class LineItem(BaseModel):
    """A stored line item. line_total_cents is always quantity * unit price."""

    description: str
    quantity: Decimal
    unit_price_cents: int
    line_total_cents: int = 0

    @model_validator(mode="after")
    def compute_line_total(self) -> "LineItem":
        """Recompute line_total_cents; any value passed in is ignored."""
        self.line_total_cents = round_half_up(self.quantity * self.unit_price_cents)
        return self

    @property
    def unit_price(self) -> Decimal:
        return from_cents(self.unit_price_cents)

    @property
    def line_total(self) -> Decimal:
        return from_cents(self.line_total_cents)


class InvoiceCreate(BaseModel):
    """Data required to create an invoice for a lead."""

    lead_id: UUID
    lead_name: str = Field(..., min_length=1, max_length=255)
    items: list[LineItemCreate]
    tax_rate: Decimal | None = Field(None, ge=0, le=1)  # Fraction: 0.08 = 8%
    due_in_days: int | None = Field(None, ge=0, le=365)


class InvoiceFilters(BaseModel):
    """Read-side filters for listing a tenant's invoices."""

    status: InvoiceStatus | None = None
    lead_id: UUID | None = None
    unpaid_only: bool = False
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    tenant_id: UUID
    lead_id: UUID
    lead_name: str
    invoice_number: str
    status: InvoiceStatus
    items: list[LineItem]
    tax_rate_bps: int
    subtotal_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    amount_paid_cents: int = 0
    date_issued: date
    date_due: date
    payment_link: str
    version: int = 1
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def recompute_on_read(self) -> "Invoice":
        stored = InvoiceTotals(self.subtotal_cents, self.tax_cents, self.total_cents)
        totals = self.recompute_totals()
        if stored != InvoiceTotals(0, 0, 0) and stored != totals:
            logger.warning(
                "Invoice %s stored totals %s drifted from line items %s; using line items",
                self.id, tuple(stored), tuple(totals),
            )
        return self

    def recompute_totals(self) -> InvoiceTotals:
        """Reset subtotal/tax/total from the line items and return them."""
        totals = compute_totals(self.items, self.tax_rate_bps)
        self.subtotal_cents, self.tax_cents, self.total_cents = totals
        return totals

    @property
    def balance_due_cents(self) -> int:
        """Remaining amount to be paid in cents. Never negative."""
        return max(self.total_cents - self.amount_paid_cents, 0)

    @property
    def subtotal(self) -> Decimal:
        return from_cents(self.subtotal_cents)

    @property
    def tax(self) -> Decimal:
        return from_cents(self.tax_cents)

    @property
    def total(self) -> Decimal:
        return from_cents(self.total_cents)

    @property
    def amount_paid(self) -> Decimal:
        return from_cents(self.amount_paid_cents)

    @property
    def balance_due(self) -> Decimal:
        return from_cents(self.balance_due_cents)

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def accepts_payments(self) -> bool:
        """Whether the ledger will record a new payment against this invoice."""
        return self.status in PAYABLE_STATUSES

    def is_past_due(self, as_of: date) -> bool:
        """Due date passed and still an overdue candidate."""
        return self.status in OVERDUE_ELIGIBLE_STATUSES and self.date_due < as_of
