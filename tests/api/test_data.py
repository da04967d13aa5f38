"""Tests for GET /api/data unified read endpoint."""

import pytest
from uuid import uuid4


def _pay(client, invoice_id, amount, external_id, method="card"):
    response = client.post("/api/actions", json={
        "domain": "payment",
        "action": "record",
        "data": {
            "invoice_id": invoice_id,
            "amount": amount,
            "method": method,
            "external_transaction_id": external_id,
        },
    })
    assert response.status_code == 200, response.text
    return response.json()["data"]


# =============================================================================
# PARAMETER VALIDATION
# =============================================================================


class TestDataValidation:

    def test_missing_tenant_returns_401(self, anonymous_client):
        response = anonymous_client.get("/api/data", params={"type": "invoices"})
        assert response.status_code == 401

    def test_missing_type_returns_400(self, client):
        response = client.get("/api/data")

        assert response.status_code == 400
        assert "'type'" in response.json()["error"]["message"]

    def test_unknown_type_returns_400(self, client):
        response = client.get("/api/data", params={"type": "customers"})

        assert response.status_code == 400
        assert "Unknown type" in response.json()["error"]["message"]

    def test_malformed_id_returns_400(self, client):
        response = client.get("/api/data", params={"type": "invoices", "id": "not-a-uuid"})
        assert response.status_code == 400

    def test_limit_out_of_range_returns_422(self, client):
        response = client.get("/api/data", params={"type": "invoices", "limit": 0})
        assert response.status_code == 422


# =============================================================================
# INVOICES
# =============================================================================


class TestInvoices:

    def test_list_for_tenant_only(self, client, client_b, api_sent_invoice):
        invoice = api_sent_invoice()

        mine = client.get("/api/data", params={"type": "invoices"}).json()["data"]
        theirs = client_b.get("/api/data", params={"type": "invoices"}).json()["data"]

        assert [i["id"] for i in mine] == [invoice["id"]]
        assert theirs == []

    def test_get_by_id(self, client, api_sent_invoice):
        invoice = api_sent_invoice()

        response = client.get("/api/data", params={"type": "invoices", "id": invoice["id"]})

        assert response.status_code == 200
        assert response.json()["data"]["invoice_number"] == invoice["invoice_number"]

    def test_get_by_number(self, client, api_sent_invoice):
        invoice = api_sent_invoice()

        response = client.get("/api/data", params={"type": "invoices", "number": invoice["invoice_number"]})

        assert response.json()["data"]["id"] == invoice["id"]

    def test_unknown_number_returns_404(self, client):
        response = client.get("/api/data", params={"type": "invoices", "number": "INV-19990101-0001"})
        assert response.status_code == 404

    def test_other_tenant_gets_404(self, client_b, api_sent_invoice):
        invoice = api_sent_invoice()

        response = client_b.get("/api/data", params={"type": "invoices", "id": invoice["id"]})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_include_payments_and_history(self, client, api_sent_invoice):
        invoice = api_sent_invoice()
        _pay(client, invoice["id"], "100", "ch_1")

        data = client.get("/api/data", params={
            "type": "invoices", "id": invoice["id"], "include": "payments,history",
        }).json()["data"]

        assert [p["external_transaction_id"] for p in data["payments"]] == ["ch_1"]
        assert [h["action"] for h in data["history"]] == ["update", "update", "create"]

    def test_filter_unpaid_and_status(self, client, api_sent_invoice):
        open_invoice = api_sent_invoice()
        paid_invoice = api_sent_invoice(price="100", tax_rate="0")
        _pay(client, paid_invoice["id"], "100", "ch_1")

        unpaid = client.get("/api/data", params={"type": "invoices", "filter": "unpaid"}).json()["data"]
        paid = client.get("/api/data", params={"type": "invoices", "status": "paid"}).json()["data"]

        assert [i["id"] for i in unpaid] == [open_invoice["id"]]
        assert [i["id"] for i in paid] == [paid_invoice["id"]]

    def test_unknown_status_returns_400(self, client):
        response = client.get("/api/data", params={"type": "invoices", "status": "void"})
        assert response.status_code == 400


# =============================================================================
# PAYMENTS & SUMMARY
# =============================================================================


class TestPayments:

    def test_list_by_invoice(self, client, api_sent_invoice):
        invoice = api_sent_invoice()
        _pay(client, invoice["id"], "100", "ch_1")
        _pay(client, invoice["id"], "50", "cash_1", method="cash")

        data = client.get("/api/data", params={"type": "payments", "invoice_id": invoice["id"]}).json()["data"]

        assert [p["amount_cents"] for p in data] == [10000, 5000]
        assert data[1]["method"] == "cash"
        assert data[1]["processing_fee_cents"] == 145 + 30

    def test_get_by_id(self, client, api_sent_invoice):
        invoice = api_sent_invoice()
        recorded = _pay(client, invoice["id"], "100", "ch_1")

        data = client.get("/api/data", params={"type": "payments", "id": recorded["payment"]["id"]}).json()["data"]

        assert data == recorded["payment"]

    def test_unknown_payment_returns_404(self, client):
        response = client.get("/api/data", params={"type": "payments", "id": str(uuid4())})
        assert response.status_code == 404

    def test_requires_id_or_invoice(self, client):
        response = client.get("/api/data", params={"type": "payments"})
        assert response.status_code == 400


class TestSummary:

    def test_summary(self, client, api_sent_invoice):
        invoice = api_sent_invoice()
        _pay(client, invoice["id"], "2700", "ch_1")

        data = client.get("/api/data", params={"type": "summary", "invoice_id": invoice["id"]}).json()["data"]

        assert data["payment_count"] == 1
        assert data["gross_paid_cents"] == 270000
        assert data["net_settlement_cents"] == 256740
        assert data["balance_due_cents"] == 270000

    @pytest.mark.parametrize("params", [{}, {"invoice_id": "00000000-0000-0000-0000-000000000000"}])
    def test_bad_invoice_reference(self, client, params):
        response = client.get("/api/data", params={"type": "summary", **params})
        assert response.status_code in (400, 404)


class TestStats:

    def test_tenant_stats(self, client, api_sent_invoice):
        first = api_sent_invoice()
        second = api_sent_invoice("100", tax_rate="0")
        _pay(client, first["id"], "2700", "ch_1")
        _pay(client, second["id"], "100", "cash_1", method="cash")

        response = client.get("/api/data", params={"type": "stats"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["invoice_count"] == 2
        assert data["counts_by_status"] == {"partially_paid": 1, "paid": 1}
        assert data["gross_collected_cents"] == 280000
        assert data["processing_fees_cents"] == 7860 + 320
        assert data["platform_fees_cents"] == 5400 + 200
        assert data["net_settlement_cents"] == 280000 - 8180 - 5600
        assert data["outstanding_cents"] == 270000

    def test_stats_scoped_to_tenant(self, client, client_b, api_sent_invoice):
        api_sent_invoice()

        data = client_b.get("/api/data", params={"type": "stats"}).json()["data"]

        assert data["tenant_id"] == str(client_b.headers["X-Tenant-ID"])
        assert data["invoice_count"] == 0
        assert data["outstanding_cents"] == 0

    def test_stats_requires_tenant(self, anonymous_client):
        response = anonymous_client.get("/api/data", params={"type": "stats"})
        assert response.status_code == 401


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:

    def test_health_needs_no_tenant(self, anonymous_client):
        response = anonymous_client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"] == {"status": "ok", "storage": "memory"}
