"""
Invoice service for the invoice lifecycle.

Invoices are created for a lead in DRAFT, sent to the customer, and from
then on only the payment ledger and the overdue sweep change their status.
Every write is a compare-and-swap on Invoice.version.
"""

import logging
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoiceCreated, InvoiceSent, InvoiceOverdue
from core.exceptions import (
    ConcurrencyConflictError,
    EmptyLineItemsError,
    InvalidLineItemError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    LedgerValidationError,
)
from core.models import Invoice, InvoiceCreate, InvoiceFilters, InvoiceStatus, LineItem, LineItemCreate
from core.repositories.base import LedgerRepository
from utils.money import rate_to_bps, to_cents
from utils.tenant_context import get_current_tenant_id
from utils.timezone import due_date, now_utc, today_utc

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        repository: LedgerRepository,
        audit: AuditLogger,
        event_bus: EventBus,
        config: LedgerConfig | None = None,
    ):
        self.repository = repository
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or LedgerConfig()

    @staticmethod
    def _build_line_items(items: list[LineItemCreate]) -> list[LineItem]:
        """Validate submitted line items and convert prices to cents."""
        if not items:
            raise EmptyLineItemsError()

        line_items = []
        for index, item in enumerate(items):
            if not item.description.strip():
                raise InvalidLineItemError(index, "description is required")
            if item.quantity <= 0:
                raise InvalidLineItemError(index, f"quantity must be positive, got {item.quantity}")
            if item.unit_price < 0:
                raise InvalidLineItemError(index, f"unit price must not be negative, got {item.unit_price}")

            try:
                unit_price_cents = to_cents(item.unit_price)
            except ValueError as e:
                raise InvalidLineItemError(index, str(e))

            line_items.append(LineItem(
                description=item.description.strip(),
                quantity=item.quantity,
                unit_price_cents=unit_price_cents,
            ))

        return line_items

    def _resolve_tax_rate_bps(self, data: InvoiceCreate) -> int:
        if data.tax_rate is None:
            return self.config.default_tax_rate_bps
        try:
            return rate_to_bps(data.tax_rate)
        except ValueError as e:
            raise LedgerValidationError(str(e))

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create an invoice for a lead.

        Args:
            data: Invoice creation data (prices in major units, tax as a fraction)

        Returns:
            Created invoice in DRAFT status with amount_paid 0

        Raises:
            EmptyLineItemsError: If no line items were given
            InvalidLineItemError: If a line item is blank, has quantity <= 0
                or a negative price
            LedgerValidationError: If the tax rate is finer than a basis point
            ConcurrencyConflictError: If no free invoice number was found
                within max_commit_retries attempts
        """
        tenant_id = get_current_tenant_id()

        items = self._build_line_items(data.items)
        tax_rate_bps = self._resolve_tax_rate_bps(data)
        due_in_days = data.due_in_days if data.due_in_days is not None else self.config.default_due_in_days

        invoice_id = uuid4()
        issued = today_utc()
        now = now_utc()
        last_conflict = None

        for attempt in range(1, self.config.max_commit_retries + 1):
            invoice_number = self.repository.next_invoice_number(
                tenant_id, self.config.invoice_number_prefix, issued
            )

            draft = Invoice(
                id=invoice_id,
                tenant_id=tenant_id,
                lead_id=data.lead_id,
                lead_name=data.lead_name,
                invoice_number=invoice_number,
                status=InvoiceStatus.DRAFT,
                items=items,
                tax_rate_bps=tax_rate_bps,
                amount_paid_cents=0,
                date_issued=issued,
                date_due=due_date(issued, due_in_days),
                payment_link=f"{self.config.payment_link_base_url.rstrip('/')}/{invoice_id}",
                version=1,
                created_at=now,
                updated_at=now,
            )

            try:
                invoice = self.repository.insert_invoice(draft)
                break
            except ConcurrencyConflictError as e:
                last_conflict = e
                logger.warning(
                    "Invoice number %s taken, retrying (attempt %d/%d)",
                    invoice_number, attempt, self.config.max_commit_retries,
                )
        else:
            raise last_conflict

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")},
            tenant_id=tenant_id,
        )

        logger.info(
            "Created invoice %s for lead %s, total %d cents",
            invoice.invoice_number, invoice.lead_id, invoice.total_cents,
        )

        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))

        return invoice

    def get_by_id(self, invoice_id: UUID) -> Invoice:
        """
        Get invoice by ID.

        Raises:
            InvoiceNotFoundError: If absent or owned by another tenant
        """
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def get_by_number(self, invoice_number: str) -> Invoice | None:
        """Invoice in the current tenant by its human-readable number, or None."""
        return self.repository.get_invoice_by_number(get_current_tenant_id(), invoice_number)

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Send a draft invoice.

        Args:
            invoice_id: Invoice UUID

        Returns:
            Updated invoice with SENT status

        Raises:
            InvoiceNotFoundError: If invoice not found
            InvalidTransitionError: If the invoice is not a draft
        """
        last_conflict = None

        for attempt in range(1, self.config.max_commit_retries + 1):
            current = self.get_by_id(invoice_id)

            if current.status != InvoiceStatus.DRAFT:
                raise InvalidTransitionError(invoice_id, current.status.value, "send")

            now = now_utc()
            try:
                updated = self.repository.update_invoice(
                    current.model_copy(update={"status": InvoiceStatus.SENT, "sent_at": now}),
                    expected_version=current.version,
                )
                break
            except ConcurrencyConflictError as e:
                last_conflict = e
                logger.warning(
                    "Send of invoice %s lost a concurrent write (attempt %d/%d)",
                    invoice_id, attempt, self.config.max_commit_retries,
                )
        else:
            raise last_conflict

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes=compute_changes(current.model_dump(mode="json"), updated.model_dump(mode="json")),
            tenant_id=updated.tenant_id,
        )

        logger.info("Sent invoice %s", updated.invoice_number)

        self.event_bus.publish(InvoiceSent.create(invoice=updated))

        return updated

    def mark_overdue(self, as_of=None) -> list[Invoice]:
        """
        Move the current tenant's past-due invoices to OVERDUE.

        Only SENT and PARTIALLY_PAID invoices whose due date is before as_of
        are touched. An invoice that a concurrent payment moves in the
        meantime is skipped; the next sweep sees its new state.

        Args:
            as_of: Reference date (defaults to today, UTC)

        Returns:
            Invoices that were moved to OVERDUE
        """
        tenant_id = get_current_tenant_id()
        as_of = as_of or today_utc()

        changed = []
        for current in self.repository.list_past_due(tenant_id, as_of):
            try:
                updated = self.repository.update_invoice(
                    current.model_copy(update={"status": InvoiceStatus.OVERDUE}),
                    expected_version=current.version,
                )
            except ConcurrencyConflictError:
                logger.warning("Invoice %s changed during overdue sweep, skipped", current.id)
                continue

            self.audit.log_change(
                entity_type="invoice",
                entity_id=updated.id,
                action=AuditAction.UPDATE,
                changes={"status": {"old": current.status.value, "new": InvoiceStatus.OVERDUE.value}},
                tenant_id=tenant_id,
            )
            self.event_bus.publish(InvoiceOverdue.create(invoice=updated))
            changed.append(updated)

        if changed:
            logger.info("Marked %d invoice(s) overdue as of %s", len(changed), as_of)

        return changed

    def list_invoices(self, tenant_id: UUID, filters: InvoiceFilters | None = None) -> list[Invoice]:
        """
        List a tenant's invoices.

        Args:
            tenant_id: Tenant whose invoices to list
            filters: Status, lead and paging filters

        Returns:
            Invoices ordered by creation time DESC
        """
        return self.repository.list_invoices(tenant_id, filters or InvoiceFilters())

    def get_history(self, invoice_id: UUID) -> list[dict]:
        """Audit entries for an invoice, newest first."""
        self.get_by_id(invoice_id)
        return self.audit.get_entity_history("invoice", invoice_id)
