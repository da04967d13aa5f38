"""
Payment ledger.

Records settled payments against invoices. Each payment carries its fee
breakdown, computed once at recording. The invoice's amount paid and status
move in the same atomic commit that appends the payment, so

    invoice.amount_paid_cents == sum(payment.amount_cents)

holds for every committed state.

Recording is idempotent on (invoice_id, external_transaction_id): while the
invoice still accepts payments, a gateway retry returns the payment recorded
the first time and changes nothing. Once the invoice is PAID every further
payment is refused, retries included.
"""

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded
from core.exceptions import (
    ConcurrencyConflictError,
    InvalidAmountError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    LedgerValidationError,
    PaymentNotFoundError,
)
from core.fees import calculate_fees
from core.models import (
    Invoice,
    InvoiceStatus,
    LedgerSummary,
    Payment,
    PaymentCreate,
    PaymentMethod,
    PaymentStatus,
    TenantStats,
    derive_payment_status,
)
from core.repositories.base import LedgerRepository
from utils.money import to_cents
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Service for recording and reading payments."""

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
    def _parse_amount(amount: Decimal | int | str) -> int:
        try:
            amount_cents = to_cents(amount)
        except ValueError as e:
            raise LedgerValidationError(str(e))
        if amount_cents <= 0:
            raise InvalidAmountError(amount_cents)
        return amount_cents

    @staticmethod
    def _parse_method(method: PaymentMethod | str) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError:
            raise LedgerValidationError(f"Unknown payment method: {method!r}")

    def _load_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def record(self, data: PaymentCreate) -> tuple[Invoice, Payment]:
        """Record a payment from a validated PaymentCreate."""
        return self.record_payment(
            invoice_id=data.invoice_id,
            amount=data.amount,
            method=data.method,
            external_transaction_id=data.external_transaction_id,
        )

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        external_transaction_id: str,
    ) -> tuple[Invoice, Payment]:
        """
        Record a settled payment against an invoice.

        Args:
            invoice_id: Invoice being paid
            amount: Gross amount in major units (Decimal("27.50"))
            method: Payment method
            external_transaction_id: Gateway reference, the idempotency key

        Returns:
            (invoice, payment) as committed. For a duplicate
            external_transaction_id, the current invoice and the payment
            recorded the first time.

        Raises:
            InvalidAmountError: If amount <= 0
            LedgerValidationError: If amount has sub-cent precision, the method
                is unknown or the transaction ID is blank
            InvoiceNotFoundError: If invoice not found
            InvalidTransitionError: If the invoice is DRAFT or already PAID,
                including a repeat of the payment that settled it
            ConcurrencyConflictError: If every commit attempt lost to a
                concurrent writer
        """
        amount_cents = self._parse_amount(amount)
        method = self._parse_method(method)
        if not external_transaction_id or not external_transaction_id.strip():
            raise LedgerValidationError("external_transaction_id is required")

        max_attempts = self.config.max_commit_retries
        last_conflict = None

        for attempt in range(1, max_attempts + 1):
            invoice = self._load_invoice(invoice_id)

            if not invoice.accepts_payments:
                raise InvalidTransitionError(invoice_id, invoice.status.value, "accept a payment")

            existing = self.repository.find_payment_by_external_id(invoice_id, external_transaction_id)
            if existing is not None:
                logger.info(
                    "Payment %s already recorded for invoice %s, returning original",
                    external_transaction_id, invoice_id,
                )
                return invoice, existing

            fees = calculate_fees(amount_cents, method, self.config.fees)
            now = now_utc()

            payment = Payment(
                id=uuid4(),
                tenant_id=invoice.tenant_id,
                invoice_id=invoice_id,
                amount_cents=amount_cents,
                method=method,
                processing_fee_cents=fees.processing_fee_cents,
                platform_fee_cents=fees.platform_fee_cents,
                net_amount_cents=fees.net_amount_cents,
                status=PaymentStatus.COMPLETED,
                external_transaction_id=external_transaction_id,
                recorded_at=now,
            )

            amount_paid_cents = invoice.amount_paid_cents + amount_cents
            status = derive_payment_status(invoice.status, amount_paid_cents, invoice.total_cents)
            proposed = invoice.model_copy(update={
                "amount_paid_cents": amount_paid_cents,
                "status": status,
                "paid_at": now if status == InvoiceStatus.PAID else invoice.paid_at,
            })

            # Audit rows ride in the same commit as the payment
            audit_entries = [
                self.audit.build_entry(
                    entity_type="payment",
                    entity_id=payment.id,
                    action=AuditAction.CREATE,
                    changes={"created": payment.model_dump(mode="json")},
                    tenant_id=payment.tenant_id,
                ),
                self.audit.build_entry(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=compute_changes(invoice.model_dump(mode="json"), proposed.model_dump(mode="json")),
                    tenant_id=invoice.tenant_id,
                ),
            ]

            try:
                updated = self.repository.commit_payment(
                    proposed,
                    payment,
                    expected_version=invoice.version,
                    audit_entries=audit_entries,
                )
                break
            except ConcurrencyConflictError as e:
                last_conflict = e
                logger.warning(
                    "Payment %s on invoice %s lost a concurrent write (attempt %d/%d)",
                    external_transaction_id, invoice_id, attempt, max_attempts,
                )
        else:
            logger.error(
                "Payment %s on invoice %s gave up after %d attempts",
                external_transaction_id, invoice_id, max_attempts,
            )
            raise last_conflict

        logger.info(
            "Recorded %s payment of %d cents on invoice %s (net %d cents, status %s)",
            method.value, amount_cents, updated.invoice_number,
            payment.net_amount_cents, updated.status.value,
        )

        self.event_bus.publish(PaymentRecorded.create(invoice=updated, payment=payment))
        if updated.status == InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=updated))

        return updated, payment

    def get_payment(self, payment_id: UUID) -> Payment:
        """
        Get payment by ID.

        Raises:
            PaymentNotFoundError: If absent or owned by another tenant
        """
        payment = self.repository.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def list_payments(self, invoice_id: UUID) -> list[Payment]:
        """
        All payments recorded against an invoice, oldest first.

        Raises:
            InvoiceNotFoundError: If invoice not found
        """
        self._load_invoice(invoice_id)
        return self.repository.list_payments(invoice_id)

    def summarize(self, invoice_id: UUID) -> LedgerSummary:
        """
        Money-flow totals for an invoice: gross collected, fees, what the
        merchant nets, and what is still outstanding.
        """
        invoice = self._load_invoice(invoice_id)
        payments = self.repository.list_payments(invoice_id)

        return LedgerSummary(
            invoice_id=invoice_id,
            payment_count=len(payments),
            gross_paid_cents=sum(p.amount_cents for p in payments),
            processing_fees_cents=sum(p.processing_fee_cents for p in payments),
            platform_fees_cents=sum(p.platform_fee_cents for p in payments),
            net_settlement_cents=sum(p.net_amount_cents for p in payments),
            total_cents=invoice.total_cents,
            balance_due_cents=invoice.balance_due_cents,
        )

    def tenant_stats(self, tenant_id: UUID) -> TenantStats:
        """Tenant-wide counts by status, collections, fees and outstanding balance."""
        stats = self.repository.tenant_stats(tenant_id)
        logger.debug(
            "Stats for tenant %s: %d invoices, %d cents outstanding",
            tenant_id, stats.invoice_count, stats.outstanding_cents,
        )
        return stats
