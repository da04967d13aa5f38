"""Propagate the acting tenant through the call stack using contextvars."""

from contextvars import ContextVar
from uuid import UUID
from contextlib import contextmanager

_current_tenant_id: ContextVar[UUID | None] = ContextVar("current_tenant_id", default=None)


def get_current_tenant_id() -> UUID:
    """
    Get current tenant ID from context.

    Raises RuntimeError if no tenant context is set. Ledger writes are
    always tenant-scoped, so reaching this without one is a bug in the caller.
    """
    tenant_id = _current_tenant_id.get()
    if tenant_id is None:
        raise RuntimeError(
            "No tenant context set. Ledger operations must run inside "
            "tenant_context() or behind TenantMiddleware."
        )
    return tenant_id


def peek_current_tenant_id() -> UUID | None:
    """Current tenant ID, or None when unset. Never raises."""
    return _current_tenant_id.get()


def set_current_tenant_id(tenant_id: UUID) -> None:
    """
    Set current tenant ID in context.

    Called by TenantMiddleware once the upstream gateway has identified the tenant.
    """
    _current_tenant_id.set(tenant_id)


def clear_current_tenant_id() -> None:
    """
    Clear tenant context.

    Must be called in a finally block so one request's tenant never leaks
    into the next request served by the same worker.
    """
    _current_tenant_id.set(None)


@contextmanager
def tenant_context(tenant_id: UUID):
    """
    Temporarily act as a tenant.

    Used by tests, the overdue sweep job and webhook relays.

    Example:
        with tenant_context(tenant_id):
            invoice = invoice_service.create(data)
    """
    previous = _current_tenant_id.get()
    set_current_tenant_id(tenant_id)
    try:
        yield
    finally:
        if previous is None:
            clear_current_tenant_id()
        else:
            set_current_tenant_id(previous)
