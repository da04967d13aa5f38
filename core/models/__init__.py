"""Core domain models."""

from core.models.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceFilters,
    InvoiceStatus,
    InvoiceTotals,
    LineItem,
    LineItemCreate,
    PAYABLE_STATUSES,
    OVERDUE_ELIGIBLE_STATUSES,
    compute_totals,
    derive_payment_status,
)
from core.models.payment import (
    Payment,
    PaymentCreate,
    PaymentMethod,
    PaymentStatus,
    LedgerSummary,
    TenantStats,
)

__all__ = [
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceFilters", "InvoiceStatus", "InvoiceTotals",
    "LineItem", "LineItemCreate",
    "PAYABLE_STATUSES", "OVERDUE_ELIGIBLE_STATUSES",
    "compute_totals", "derive_payment_status",
    # Payment
    "Payment", "PaymentCreate", "PaymentMethod", "PaymentStatus", "LedgerSummary", "TenantStats",
]
