"""Typed exceptions for ledger failures.

Every rejected operation leaves invoices and payments exactly as they were.
"""


class LedgerError(Exception):
    """Base class for invoice and payment ledger errors."""


# =============================================================================
# VALIDATION - rejected before any state is touched
# =============================================================================


class LedgerValidationError(LedgerError):
    """Caller input is invalid."""


class EmptyLineItemsError(LedgerValidationError):
    """An invoice needs at least one line item."""

    def __init__(self):
        super().__init__("Invoice must have at least one line item")


class InvalidLineItemError(LedgerValidationError):
    """A line item has a non-positive quantity, negative price or no description."""

    def __init__(self, index: int, reason: str):
        self.index = index
        self.reason = reason
        super().__init__(f"Line item {index} is invalid: {reason}")


class InvalidAmountError(LedgerValidationError):
    """Payment amounts must be strictly positive."""

    def __init__(self, amount_cents: int):
        self.amount_cents = amount_cents
        super().__init__(f"Payment amount must be positive, got {amount_cents} cents")


# =============================================================================
# DOMAIN STATE
# =============================================================================


class DomainStateError(LedgerError):
    """
    The operation is not allowed in the entity's current state.

    Carries the current status so the caller can reconcile.
    """

    def __init__(self, message: str, current_status: str):
        self.current_status = current_status
        super().__init__(message)


class InvalidTransitionError(DomainStateError):
    """Requested status change is not an edge of the invoice state machine."""

    def __init__(self, invoice_id, current_status: str, attempted: str):
        self.invoice_id = invoice_id
        self.attempted = attempted
        super().__init__(
            f"Invoice {invoice_id} cannot {attempted} while {current_status}",
            current_status,
        )


# =============================================================================
# LOOKUP
# =============================================================================


class NotFoundError(LedgerError):
    """Referenced entity does not exist (or belongs to another tenant)."""


class InvoiceNotFoundError(NotFoundError):

    def __init__(self, invoice_id):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} not found")


class PaymentNotFoundError(NotFoundError):

    def __init__(self, payment_id):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


# =============================================================================
# CONCURRENCY
# =============================================================================


class ConcurrencyConflictError(LedgerError):
    """
    Compare-and-swap on an invoice row lost to a concurrent writer.

    The ledger retries these itself; callers only see one once the retry
    budget is exhausted.
    """

    def __init__(self, invoice_id, expected_version: int | None = None):
        self.invoice_id = invoice_id
        self.expected_version = expected_version
        if expected_version is None:
            message = f"Concurrent update conflict on invoice {invoice_id}"
        else:
            message = (
                f"Concurrent update conflict on invoice {invoice_id} "
                f"(expected version {expected_version})"
            )
        super().__init__(message)
