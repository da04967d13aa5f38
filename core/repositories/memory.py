"""
In-process LedgerRepository.

Backs tests and single-process deployments. A single lock serializes every
write, so compare-and-swap checks and the invoice+payment commit are atomic.
Tenant visibility mirrors the Postgres row level security policy: rows are
visible only to the tenant in the current tenant context.
"""

import threading
from collections import Counter
from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID

from core.exceptions import ConcurrencyConflictError, InvoiceNotFoundError
from core.models import (
    Invoice,
    InvoiceFilters,
    InvoiceStatus,
    OVERDUE_ELIGIBLE_STATUSES,
    Payment,
    TenantStats,
)
from core.repositories.base import LedgerRepository
from utils.tenant_context import peek_current_tenant_id
from utils.timezone import now_utc


_UNPAID_STATUSES = frozenset({
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
})


class InMemoryLedgerRepository(LedgerRepository):
    """Dict-backed repository. Stores and returns copies, never shared instances."""

    def __init__(self):
        self._lock = threading.RLock()
        self._invoices: dict[UUID, Invoice] = {}
        self._payments: dict[UUID, Payment] = {}
        self._payments_by_invoice: dict[UUID, list[UUID]] = {}
        self._payment_keys: dict[tuple[UUID, str], UUID] = {}
        self._audit: list[dict[str, Any]] = []

    @staticmethod
    def _visible(tenant_id: UUID) -> bool:
        return tenant_id == peek_current_tenant_id()

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def next_invoice_number(self, tenant_id: UUID, prefix: str, issued: date) -> str:
        day_prefix = f"{prefix}-{issued.strftime('%Y%m%d')}-"

        with self._lock:
            existing = [
                inv.invoice_number for inv in self._invoices.values()
                if inv.tenant_id == tenant_id and inv.invoice_number.startswith(day_prefix)
            ]

        sequences = []
        for number in existing:
            try:
                sequences.append(int(number.rsplit("-", 1)[-1]))
            except ValueError:
                continue

        return f"{day_prefix}{max(sequences, default=0) + 1:04d}"

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        with self._lock:
            taken = any(
                inv.tenant_id == invoice.tenant_id and inv.invoice_number == invoice.invoice_number
                for inv in self._invoices.values()
            )
            if taken:
                raise ConcurrencyConflictError(invoice.id)

            self._invoices[invoice.id] = invoice.model_copy(deep=True)
            self._payments_by_invoice[invoice.id] = []
            return invoice.model_copy(deep=True)

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            if invoice is None or not self._visible(invoice.tenant_id):
                return None
            return invoice.model_copy(deep=True)

    def get_invoice_by_number(self, tenant_id: UUID, invoice_number: str) -> Invoice | None:
        if not self._visible(tenant_id):
            return None

        with self._lock:
            for invoice in self._invoices.values():
                if invoice.tenant_id == tenant_id and invoice.invoice_number == invoice_number:
                    return invoice.model_copy(deep=True)
        return None

    def list_invoices(self, tenant_id: UUID, filters: InvoiceFilters) -> list[Invoice]:
        if not self._visible(tenant_id):
            return []

        with self._lock:
            rows = [inv for inv in self._invoices.values() if inv.tenant_id == tenant_id]

        if filters.status is not None:
            rows = [inv for inv in rows if inv.status == filters.status]
        if filters.lead_id is not None:
            rows = [inv for inv in rows if inv.lead_id == filters.lead_id]
        if filters.unpaid_only:
            rows = [inv for inv in rows if inv.status in _UNPAID_STATUSES]

        rows.sort(key=lambda inv: inv.created_at, reverse=True)
        page = rows[filters.offset:filters.offset + filters.limit]
        return [inv.model_copy(deep=True) for inv in page]

    def list_past_due(self, tenant_id: UUID, as_of: date) -> list[Invoice]:
        if not self._visible(tenant_id):
            return []

        with self._lock:
            rows = [
                inv.model_copy(deep=True) for inv in self._invoices.values()
                if inv.tenant_id == tenant_id
                and inv.status in OVERDUE_ELIGIBLE_STATUSES
                and inv.date_due < as_of
            ]
        rows.sort(key=lambda inv: inv.date_due)
        return rows

    def _swap_invoice(self, invoice: Invoice, expected_version: int) -> Invoice:
        """Version check and write. Caller holds the lock."""
        current = self._invoices.get(invoice.id)
        if current is None or not self._visible(current.tenant_id):
            raise InvoiceNotFoundError(invoice.id)
        if current.version != expected_version:
            raise ConcurrencyConflictError(invoice.id, expected_version)

        stored = invoice.model_copy(
            update={"version": expected_version + 1, "updated_at": now_utc()},
            deep=True,
        )
        self._invoices[invoice.id] = stored
        return stored

    def update_invoice(self, invoice: Invoice, expected_version: int) -> Invoice:
        with self._lock:
            return self._swap_invoice(invoice, expected_version).model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def get_payment(self, payment_id: UUID) -> Payment | None:
        with self._lock:
            payment = self._payments.get(payment_id)
        if payment is None or not self._visible(payment.tenant_id):
            return None
        return payment

    def find_payment_by_external_id(
        self, invoice_id: UUID, external_transaction_id: str
    ) -> Payment | None:
        with self._lock:
            payment_id = self._payment_keys.get((invoice_id, external_transaction_id))
            if payment_id is None:
                return None
            payment = self._payments[payment_id]
        if not self._visible(payment.tenant_id):
            return None
        return payment

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        with self._lock:
            ids = list(self._payments_by_invoice.get(invoice_id, ()))
            payments = [self._payments[pid] for pid in ids]
        return [p for p in payments if self._visible(p.tenant_id)]

    def commit_payment(
        self,
        invoice: Invoice,
        payment: Payment,
        expected_version: int,
        audit_entries: Sequence[dict[str, Any]] = (),
    ) -> Invoice:
        key = (payment.invoice_id, payment.external_transaction_id)

        with self._lock:
            if key in self._payment_keys:
                raise ConcurrencyConflictError(invoice.id, expected_version)

            stored = self._swap_invoice(invoice, expected_version)

            # Payment is frozen, safe to share
            self._payments[payment.id] = payment
            self._payments_by_invoice.setdefault(payment.invoice_id, []).append(payment.id)
            self._payment_keys[key] = payment.id
            self._audit.extend(dict(e) for e in audit_entries)

            return stored.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    def append_audit(self, entry: dict[str, Any]) -> None:
        with self._lock:
            self._audit.append(dict(entry))

    def list_audit(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        with self._lock:
            entries = [
                dict(e) for e in self._audit
                if e["entity_type"] == entity_type and e["entity_id"] == entity_id
            ]
        entries.reverse()
        return entries

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def tenant_stats(self, tenant_id: UUID) -> TenantStats:
        stats = TenantStats(tenant_id=tenant_id)
        if not self._visible(tenant_id):
            return stats

        with self._lock:
            invoices = [inv for inv in self._invoices.values() if inv.tenant_id == tenant_id]
            payments = [p for p in self._payments.values() if p.tenant_id == tenant_id]

        counts = Counter(inv.status.value for inv in invoices)
        return stats.model_copy(update={
            "invoice_count": len(invoices),
            "counts_by_status": dict(counts),
            "total_billed_cents": sum(
                inv.total_cents for inv in invoices if inv.status != InvoiceStatus.DRAFT
            ),
            "gross_collected_cents": sum(p.amount_cents for p in payments),
            "processing_fees_cents": sum(p.processing_fee_cents for p in payments),
            "platform_fees_cents": sum(p.platform_fee_cents for p in payments),
            "net_settlement_cents": sum(p.net_amount_cents for p in payments),
            "outstanding_cents": sum(
                inv.balance_due_cents for inv in invoices if inv.status in _UNPAID_STATUSES
            ),
        })
