"""API test fixtures - TestClient over the real app with in-memory services."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app


# =============================================================================
# SERVICES DICT
# =============================================================================


@pytest.fixture
def services(invoice_service, payment_ledger):
    return {
        "invoice": invoice_service,
        "payment": payment_ledger,
    }


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(config, services):
    """Ledger app with tenant middleware, error handlers, and data/actions routes."""
    return create_app(config, services=services)


@pytest.fixture
def client(app, tenant_id):
    """Client acting as the primary test tenant."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Tenant-ID"] = str(tenant_id)
    return c


@pytest.fixture
def client_b(app, tenant_b_id):
    """Client acting as the secondary tenant."""
    c = TestClient(app, raise_server_exceptions=False)
    c.headers["X-Tenant-ID"] = str(tenant_b_id)
    return c


@pytest.fixture
def anonymous_client(app):
    """Client without an X-Tenant-ID header."""
    return TestClient(app, raise_server_exceptions=False)


# =============================================================================
# REQUEST HELPERS
# =============================================================================


def _invoice_payload(price="5000", tax_rate="0.08"):
    return {
        "lead_id": "7a1c8a3e-52a4-4a8e-9d57-0f1f7c2d9b11",
        "lead_name": "Jordan Rivera",
        "items": [{"description": "Roof repair", "quantity": "1", "unit_price": price}],
        "tax_rate": tax_rate,
    }


@pytest.fixture
def invoice_payload():
    return _invoice_payload


@pytest.fixture
def api_sent_invoice(client, invoice_payload):
    """Factory: create and send an invoice through the API, return its JSON."""
    def make(price="5000", tax_rate="0.08"):
        created = client.post("/api/actions", json={
            "domain": "invoice", "action": "create", "data": invoice_payload(price, tax_rate),
        })
        assert created.status_code == 200, created.text
        sent = client.post("/api/actions", json={
            "domain": "invoice", "action": "send", "data": {"id": created.json()["data"]["id"]},
        })
        assert sent.status_code == 200, sent.text
        return sent.json()["data"]
    return make
