"""
PostgreSQL LedgerRepository.

Invoice writes are compare-and-swap updates on the version column
(UPDATE ... WHERE id = %s AND version = %s). A payment commit runs the
invoice CAS, the payment INSERT and its audit rows in one database
transaction; a lost CAS or a duplicate external transaction ID rolls the
whole thing back and is reported as ConcurrencyConflictError for the ledger
to retry.

Schema: migrations/001_ledger.sql
"""

import logging
from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID, uuid4

import psycopg2.errors
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.exceptions import ConcurrencyConflictError, InvoiceNotFoundError
from core.models import Invoice, InvoiceFilters, InvoiceStatus, Payment, TenantStats
from core.repositories.base import LedgerRepository
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UNPAID_STATUS_VALUES = frozenset({
    InvoiceStatus.SENT.value,
    InvoiceStatus.PARTIALLY_PAID.value,
    InvoiceStatus.OVERDUE.value,
})


class PostgresLedgerRepository(LedgerRepository):
    """LedgerRepository on PostgresClient. Tenant scoping comes from RLS."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    @staticmethod
    def _items_json(invoice: Invoice) -> Json:
        return Json([item.model_dump(mode="json") for item in invoice.items])

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    def next_invoice_number(self, tenant_id: UUID, prefix: str, issued: date) -> str:
        day_prefix = f"{prefix}-{issued.strftime('%Y%m%d')}-"

        result = self.postgres.execute_single(
            """
            SELECT invoice_number FROM invoices
            WHERE tenant_id = %s AND invoice_number LIKE %s
            ORDER BY length(invoice_number) DESC, invoice_number DESC
            LIMIT 1
            """,
            (tenant_id, f"{day_prefix}%")
        )

        if result is None:
            sequence = 1
        else:
            try:
                sequence = int(result["invoice_number"].rsplit("-", 1)[-1]) + 1
            except ValueError:
                sequence = 1

        return f"{day_prefix}{sequence:04d}"

    def insert_invoice(self, invoice: Invoice) -> Invoice:
        try:
            row = self.postgres.execute_single(
                """
                INSERT INTO invoices (
                    id, tenant_id, lead_id, lead_name,
                    invoice_number, status, items,
                    tax_rate_bps, subtotal_cents, tax_cents, total_cents,
                    amount_paid_cents, date_issued, date_due, payment_link,
                    version, sent_at, paid_at, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    invoice.id, invoice.tenant_id, invoice.lead_id, invoice.lead_name,
                    invoice.invoice_number, invoice.status.value, self._items_json(invoice),
                    invoice.tax_rate_bps, invoice.subtotal_cents, invoice.tax_cents, invoice.total_cents,
                    invoice.amount_paid_cents, invoice.date_issued, invoice.date_due, invoice.payment_link,
                    invoice.version, invoice.sent_at, invoice.paid_at, invoice.created_at, invoice.updated_at,
                )
            )
        except psycopg2.errors.UniqueViolation:
            raise ConcurrencyConflictError(invoice.id)

        return Invoice.model_validate(row)

    def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        if row is None:
            return None
        return Invoice.model_validate(row)

    def get_invoice_by_number(self, tenant_id: UUID, invoice_number: str) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE tenant_id = %s AND invoice_number = %s",
            (tenant_id, invoice_number)
        )
        if row is None:
            return None
        return Invoice.model_validate(row)

    def list_invoices(self, tenant_id: UUID, filters: InvoiceFilters) -> list[Invoice]:
        clauses = ["tenant_id = %s"]
        params: list[Any] = [tenant_id]

        if filters.status is not None:
            clauses.append("status = %s")
            params.append(filters.status.value)
        if filters.lead_id is not None:
            clauses.append("lead_id = %s")
            params.append(filters.lead_id)
        if filters.unpaid_only:
            clauses.append("status IN ('sent', 'partially_paid', 'overdue')")

        params.extend([filters.limit, filters.offset])

        rows = self.postgres.execute(
            f"""
            SELECT * FROM invoices
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params)
        )
        return [Invoice.model_validate(row) for row in rows]

    def list_past_due(self, tenant_id: UUID, as_of: date) -> list[Invoice]:
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE tenant_id = %s
              AND status IN (%s, %s)
              AND date_due < %s
            ORDER BY date_due ASC
            """,
            (tenant_id, InvoiceStatus.SENT.value, InvoiceStatus.PARTIALLY_PAID.value, as_of)
        )
        return [Invoice.model_validate(row) for row in rows]

    def _swap_invoice(self, tx, invoice: Invoice, expected_version: int) -> Invoice:
        row = tx.execute_single(
            """
            UPDATE invoices
            SET status = %s, amount_paid_cents = %s, sent_at = %s, paid_at = %s,
                version = version + 1, updated_at = %s
            WHERE id = %s AND version = %s
            RETURNING *
            """,
            (
                invoice.status.value, invoice.amount_paid_cents, invoice.sent_at, invoice.paid_at,
                now_utc(), invoice.id, expected_version,
            )
        )
        if row is not None:
            return Invoice.model_validate(row)

        exists = tx.execute_single("SELECT version FROM invoices WHERE id = %s", (invoice.id,))
        if exists is None:
            raise InvoiceNotFoundError(invoice.id)
        raise ConcurrencyConflictError(invoice.id, expected_version)

    def update_invoice(self, invoice: Invoice, expected_version: int) -> Invoice:
        with self.postgres.transaction() as tx:
            return self._swap_invoice(tx, invoice, expected_version)

    # -------------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------------

    def get_payment(self, payment_id: UUID) -> Payment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE id = %s",
            (payment_id,)
        )
        if row is None:
            return None
        return Payment.model_validate(row)

    def find_payment_by_external_id(
        self, invoice_id: UUID, external_transaction_id: str
    ) -> Payment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE invoice_id = %s AND external_transaction_id = %s",
            (invoice_id, external_transaction_id)
        )
        if row is None:
            return None
        return Payment.model_validate(row)

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        rows = self.postgres.execute(
            """
            SELECT * FROM payments
            WHERE invoice_id = %s
            ORDER BY recorded_at ASC, id ASC
            """,
            (invoice_id,)
        )
        return [Payment.model_validate(row) for row in rows]

    def commit_payment(
        self,
        invoice: Invoice,
        payment: Payment,
        expected_version: int,
        audit_entries: Sequence[dict[str, Any]] = (),
    ) -> Invoice:
        try:
            with self.postgres.transaction() as tx:
                stored = self._swap_invoice(tx, invoice, expected_version)
                tx.execute(
                    """
                    INSERT INTO payments (
                        id, tenant_id, invoice_id, amount_cents, method,
                        processing_fee_cents, platform_fee_cents, net_amount_cents,
                        status, external_transaction_id, recorded_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        payment.id, payment.tenant_id, payment.invoice_id,
                        payment.amount_cents, payment.method.value,
                        payment.processing_fee_cents, payment.platform_fee_cents,
                        payment.net_amount_cents, payment.status.value,
                        payment.external_transaction_id, payment.recorded_at,
                    )
                )
                for entry in audit_entries:
                    self._insert_audit(tx, entry)
        except psycopg2.errors.UniqueViolation:
            logger.warning(
                "Payment %s for invoice %s already recorded concurrently",
                payment.external_transaction_id, invoice.id,
            )
            raise ConcurrencyConflictError(invoice.id, expected_version)

        return stored

    # -------------------------------------------------------------------------
    # Audit
    # -------------------------------------------------------------------------

    @staticmethod
    def _insert_audit(executor, entry: dict[str, Any]) -> None:
        # audit_log has NO RLS so any executor works
        executor.execute(
            """
            INSERT INTO audit_log (id, tenant_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.get("id", uuid4()),
                entry.get("tenant_id"),
                entry["entity_type"],
                entry["entity_id"],
                entry["action"],
                Json(entry["changes"]),
                entry["created_at"],
            )
        )

    def append_audit(self, entry: dict[str, Any]) -> None:
        self._insert_audit(self.postgres, entry)

    def list_audit(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        return self.postgres.execute(
            """
            SELECT id, tenant_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def tenant_stats(self, tenant_id: UUID) -> TenantStats:
        with self.postgres.transaction() as tx:
            by_status = tx.execute(
                """
                SELECT status,
                       count(*) AS invoice_count,
                       COALESCE(SUM(total_cents), 0)::bigint AS total_cents,
                       COALESCE(SUM(GREATEST(total_cents - amount_paid_cents, 0)), 0)::bigint AS balance_due_cents
                FROM invoices
                WHERE tenant_id = %s
                GROUP BY status
                """,
                (tenant_id,)
            )
            collected = tx.execute_single(
                """
                SELECT COALESCE(SUM(amount_cents), 0)::bigint AS gross_collected_cents,
                       COALESCE(SUM(processing_fee_cents), 0)::bigint AS processing_fees_cents,
                       COALESCE(SUM(platform_fee_cents), 0)::bigint AS platform_fees_cents,
                       COALESCE(SUM(net_amount_cents), 0)::bigint AS net_settlement_cents
                FROM payments
                WHERE tenant_id = %s
                """,
                (tenant_id,)
            )

        billed = [row for row in by_status if row["status"] != InvoiceStatus.DRAFT.value]
        unpaid = [row for row in by_status if row["status"] in _UNPAID_STATUS_VALUES]

        return TenantStats(
            tenant_id=tenant_id,
            invoice_count=sum(row["invoice_count"] for row in by_status),
            counts_by_status={row["status"]: row["invoice_count"] for row in by_status},
            total_billed_cents=sum(row["total_cents"] for row in billed),
            gross_collected_cents=collected["gross_collected_cents"],
            processing_fees_cents=collected["processing_fees_cents"],
            platform_fees_cents=collected["platform_fees_cents"],
            net_settlement_cents=collected["net_settlement_cents"],
            outstanding_cents=sum(row["balance_due_cents"] for row in unpaid),
        )
