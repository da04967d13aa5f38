"""
Event bus for ledger domain events.

The ledger publishes after a commit and never waits on what happens next.
Typical subscribers:

    PaymentRecorded  -> receipt email to the customer
    InvoicePaid      -> payout reconciliation, CRM deal marked won
    InvoiceOverdue   -> dunning reminder

Handlers run synchronously on the publishing thread, in subscription order.
A failing handler is logged and skipped. The payment or invoice change it
reacts to is already stored, so the publisher still reports success.
"""

import logging
import threading
from typing import Callable

from core.events import LedgerEvent

logger = logging.getLogger(__name__)

Handler = Callable[[LedgerEvent], None]


def _event_names(base: type = LedgerEvent) -> set[str]:
    names = set()
    for cls in base.__subclasses__():
        names.add(cls.__name__)
        names |= _event_names(cls)
    return names


class EventBus:
    """
    In-process pub/sub keyed by event class name.

    Usage:
        bus = EventBus()
        bus.subscribe(InvoicePaid, reconcile_payout)
        bus.subscribe("PaymentRecorded", send_receipt)

        bus.publish(InvoicePaid.create(invoice=invoice))
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _resolve(event_type: str | type[LedgerEvent]) -> str:
        name = event_type if isinstance(event_type, str) else event_type.__name__
        # A misspelt name would subscribe to an event that is never published
        if name not in _event_names():
            raise ValueError(f"Unknown ledger event: {name!r}")
        return name

    def subscribe(self, event_type: str | type[LedgerEvent], handler: Handler) -> None:
        """
        Register handler for one event type.

        Args:
            event_type: Event class, or its name ('InvoicePaid')
            handler: Called with the event instance

        Raises:
            ValueError: event_type is not a ledger event
        """
        name = self._resolve(event_type)
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

    def unsubscribe(self, event_type: str | type[LedgerEvent], handler: Handler) -> bool:
        """Remove one registration of handler. False if it was not subscribed."""
        name = self._resolve(event_type)
        with self._lock:
            handlers = self._handlers.get(name, [])
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def publish(self, event: LedgerEvent) -> int:
        """
        Deliver event to its subscribers.

        Returns:
            Number of handlers that failed
        """
        name = type(event).__name__

        with self._lock:
            handlers = list(self._handlers.get(name, ()))

        failures = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    "%s handler %s failed (event_id=%s)",
                    name,
                    getattr(handler, "__name__", repr(handler)),
                    event.event_id,
                )
        return failures
