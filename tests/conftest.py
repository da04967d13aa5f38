"""Shared test fixtures for the ledger test suite."""

import os
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module.reset_vault_client()

from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.models import InvoiceCreate, LineItemCreate
from core.repositories import InMemoryLedgerRepository
from core.services.invoice_service import InvoiceService
from core.services.payment_ledger import PaymentLedger
from utils.tenant_context import tenant_context, clear_current_tenant_id


# =============================================================================
# TEST TENANT CONSTANTS
# =============================================================================

# Primary test tenant - use for single-tenant tests
TEST_TENANT_ID = UUID("00000000-0000-0000-0000-0000000000a1")

# Secondary test tenant - use for isolation tests
TEST_TENANT_B_ID = UUID("00000000-0000-0000-0000-0000000000b2")

EVENT_NAMES = ["InvoiceCreated", "InvoiceSent", "InvoicePaid", "InvoiceOverdue", "PaymentRecorded"]


# =============================================================================
# TENANT CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_tenant_context():
    """Ensure clean tenant context before and after each test."""
    clear_current_tenant_id()
    yield
    clear_current_tenant_id()


@pytest.fixture
def tenant_id() -> UUID:
    return TEST_TENANT_ID


@pytest.fixture
def tenant_b_id() -> UUID:
    return TEST_TENANT_B_ID


@pytest.fixture
def as_tenant(tenant_id):
    """Run the test inside the primary tenant's context."""
    with tenant_context(tenant_id):
        yield tenant_id


@pytest.fixture
def as_tenant_b(tenant_b_id):
    with tenant_context(tenant_b_id):
        yield tenant_b_id


# =============================================================================
# SERVICE FIXTURES (in-memory repository)
# =============================================================================


@pytest.fixture
def config():
    return LedgerConfig()


@pytest.fixture
def repository():
    return InMemoryLedgerRepository()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def audit(repository):
    return AuditLogger(repository)


@pytest.fixture
def invoice_service(repository, audit, event_bus, config):
    return InvoiceService(repository, audit, event_bus, config)


@pytest.fixture
def payment_ledger(repository, audit, event_bus, config):
    return PaymentLedger(repository, audit, event_bus, config)


@pytest.fixture
def published_events(event_bus):
    """Every event published on the bus, in order."""
    events = []
    for name in EVENT_NAMES:
        event_bus.subscribe(name, events.append)
    return events


# =============================================================================
# DATA HELPERS
# =============================================================================


def _invoice_data(*prices, tax_rate="0.08", lead_id=None, due_in_days=None) -> InvoiceCreate:
    """InvoiceCreate with one quantity-1 line item per price (major units)."""
    return InvoiceCreate(
        lead_id=lead_id or uuid4(),
        lead_name="Jordan Rivera",
        items=[
            LineItemCreate(description=f"Item {i + 1}", quantity=Decimal(1), unit_price=Decimal(str(p)))
            for i, p in enumerate(prices or ("5000",))
        ],
        tax_rate=Decimal(tax_rate) if tax_rate is not None else None,
        due_in_days=due_in_days,
    )


@pytest.fixture
def invoice_data():
    """Factory for InvoiceCreate payloads."""
    return _invoice_data


@pytest.fixture
def sent_invoice(as_tenant, invoice_service):
    """Factory: create and send an invoice. Defaults to one 5000.00 item at 8% tax."""
    def make(*prices, **kwargs):
        invoice = invoice_service.create(_invoice_data(*prices, **kwargs))
        return invoice_service.send(invoice.id)
    return make


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """
    Session-scoped PostgresClient against LEDGER_TEST_DATABASE_URL.

    Tests that use it are skipped when the variable is unset. The schema in
    migrations/001_ledger.sql is applied on first use.
    """
    database_url = os.getenv("LEDGER_TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("LEDGER_TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(database_url, min_connections=1, max_connections=10)
    schema = (Path(__file__).parent.parent / "migrations" / "001_ledger.sql").read_text()
    client.execute(schema)
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty ledger tables before the test."""
    db.execute("TRUNCATE payments, invoices, audit_log CASCADE")
    return db
