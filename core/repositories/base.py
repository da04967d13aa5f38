"""Ledger Repository Interface

Defines the persistence contract the invoice service and payment ledger
depend on. Implementations must make commit_payment all-or-nothing and
guard every invoice write with a compare-and-swap on Invoice.version.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID

from core.models import Invoice, InvoiceFilters, Payment, TenantStats


class LedgerRepository(ABC):
    """
    Repository interface for invoices, payments and their audit trail.

    Reads are tenant-scoped: an invoice that belongs to another tenant is
    reported as missing (None), never returned.
    """

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    @abstractmethod
    def next_invoice_number(self, tenant_id: UUID, prefix: str, issued: date) -> str:
        """
        Propose the next invoice number for a tenant.

        Format: {prefix}-YYYYMMDD-NNNN. The number is only a proposal;
        insert_invoice rejects it if a concurrent create claimed it first.
        """

    @abstractmethod
    def insert_invoice(self, invoice: Invoice) -> Invoice:
        """
        Persist a new invoice.

        Raises:
            ConcurrencyConflictError: invoice_number already taken for the tenant
        """

    @abstractmethod
    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        """Invoice by ID, or None if absent or owned by another tenant."""

    @abstractmethod
    def get_invoice_by_number(self, tenant_id: UUID, invoice_number: str) -> Invoice | None:
        """Invoice by its human-readable number within a tenant."""

    @abstractmethod
    def list_invoices(self, tenant_id: UUID, filters: InvoiceFilters) -> list[Invoice]:
        """Tenant's invoices matching filters, newest first."""

    @abstractmethod
    def list_past_due(self, tenant_id: UUID, as_of: date) -> list[Invoice]:
        """SENT / PARTIALLY_PAID invoices whose date_due is before as_of."""

    @abstractmethod
    def update_invoice(self, invoice: Invoice, expected_version: int) -> Invoice:
        """
        Compare-and-swap write of an invoice's mutable fields.

        Returns:
            Stored invoice with version = expected_version + 1

        Raises:
            InvoiceNotFoundError: invoice does not exist
            ConcurrencyConflictError: stored version != expected_version
        """

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_payment(self, payment_id: UUID) -> Payment | None:
        """Payment by ID, or None."""

    @abstractmethod
    def find_payment_by_external_id(
        self, invoice_id: UUID, external_transaction_id: str
    ) -> Payment | None:
        """Payment previously recorded for this invoice under the gateway reference."""

    @abstractmethod
    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        """All payments for an invoice, oldest first."""

    @abstractmethod
    def commit_payment(
        self,
        invoice: Invoice,
        payment: Payment,
        expected_version: int,
        audit_entries: Sequence[dict[str, Any]] = (),
    ) -> Invoice:
        """
        Atomically apply a payment: CAS-update the invoice, append the
        payment and append its audit entries.

        Either all writes happen or none do.

        Returns:
            Stored invoice with version = expected_version + 1

        Raises:
            InvoiceNotFoundError: invoice does not exist
            ConcurrencyConflictError: version moved, or the external
                transaction ID was recorded concurrently
        """

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    @abstractmethod
    def append_audit(self, entry: dict[str, Any]) -> None:
        """Append one audit entry. Entries are never modified or deleted."""

    @abstractmethod
    def list_audit(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """Audit history for one entity, newest first."""

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    @abstractmethod
    def tenant_stats(self, tenant_id: UUID) -> TenantStats:
        """
        Tenant-wide totals: invoice counts by status, money collected and
        its fees, and the balance outstanding on unpaid invoices.
        """
