"""Tests for InMemoryLedgerRepository - CAS writes, atomic commits, tenant scoping, stats."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from core.exceptions import ConcurrencyConflictError, InvoiceNotFoundError
from core.models import (
    Invoice, InvoiceFilters, InvoiceStatus, LineItem,
    Payment, PaymentMethod, PaymentStatus,
)
from utils.tenant_context import tenant_context
from utils.timezone import now_utc


def _invoice(tenant_id, number="INV-20260301-0001", status=InvoiceStatus.SENT, **overrides) -> Invoice:
    now = now_utc()
    fields = dict(
        id=uuid4(), tenant_id=tenant_id, lead_id=uuid4(), lead_name="Lead",
        invoice_number=number, status=status,
        items=[LineItem(description="Roof", quantity=Decimal(1), unit_price_cents=10000)],
        tax_rate_bps=0, date_issued=date(2026, 3, 1), date_due=date(2026, 3, 15),
        payment_link="https://pay.example.com/i/x", created_at=now, updated_at=now,
    )
    fields.update(overrides)
    return Invoice(**fields)


def _payment(invoice, amount_cents=4000, external_id="ch_1") -> Payment:
    return Payment(
        id=uuid4(), tenant_id=invoice.tenant_id, invoice_id=invoice.id,
        amount_cents=amount_cents, method=PaymentMethod.CASH,
        processing_fee_cents=0, platform_fee_cents=0, net_amount_cents=amount_cents,
        status=PaymentStatus.COMPLETED, external_transaction_id=external_id,
        recorded_at=now_utc(),
    )


def _audit_entry(payment) -> dict:
    return {
        "id": uuid4(), "tenant_id": payment.tenant_id, "entity_type": "payment",
        "entity_id": payment.id, "action": "create", "changes": {}, "created_at": now_utc(),
    }


class TestInvoiceNumbers:

    def test_first_number_of_the_day(self, repository, as_tenant):
        assert repository.next_invoice_number(as_tenant, "INV", date(2026, 3, 1)) == "INV-20260301-0001"

    def test_sequence_increments(self, repository, as_tenant):
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001"))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0009"))

        assert repository.next_invoice_number(as_tenant, "INV", date(2026, 3, 1)) == "INV-20260301-0010"

    def test_sequence_is_per_day(self, repository, as_tenant):
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0004"))
        assert repository.next_invoice_number(as_tenant, "INV", date(2026, 3, 2)) == "INV-20260302-0001"

    def test_sequence_is_per_tenant(self, repository, tenant_id, tenant_b_id):
        repository.insert_invoice(_invoice(tenant_id, "INV-20260301-0001"))
        assert repository.next_invoice_number(tenant_b_id, "INV", date(2026, 3, 1)) == "INV-20260301-0001"

    def test_duplicate_number_conflicts(self, repository, as_tenant):
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001"))
        with pytest.raises(ConcurrencyConflictError):
            repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001"))


class TestReads:

    def test_get_returns_copy(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        fetched = repository.get_invoice(stored.id)

        fetched.amount_paid_cents = 99
        assert repository.get_invoice(stored.id).amount_paid_cents == 0

    def test_other_tenant_sees_nothing(self, repository, tenant_id, tenant_b_id):
        with tenant_context(tenant_id):
            stored = repository.insert_invoice(_invoice(tenant_id))

        with tenant_context(tenant_b_id):
            assert repository.get_invoice(stored.id) is None
            assert repository.get_invoice_by_number(tenant_id, stored.invoice_number) is None
            assert repository.list_invoices(tenant_id, InvoiceFilters()) == []

    def test_no_tenant_context_sees_nothing(self, repository, tenant_id):
        with tenant_context(tenant_id):
            stored = repository.insert_invoice(_invoice(tenant_id))
        assert repository.get_invoice(stored.id) is None

    def test_get_by_number(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0042"))
        assert repository.get_invoice_by_number(as_tenant, "INV-20260301-0042").id == stored.id

    def test_list_filters(self, repository, as_tenant):
        lead_id = uuid4()
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001", status=InvoiceStatus.DRAFT))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0002", status=InvoiceStatus.SENT, lead_id=lead_id))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0003", status=InvoiceStatus.PAID))

        assert len(repository.list_invoices(as_tenant, InvoiceFilters())) == 3
        assert [i.invoice_number for i in repository.list_invoices(
            as_tenant, InvoiceFilters(status=InvoiceStatus.PAID))] == ["INV-20260301-0003"]
        assert [i.lead_id for i in repository.list_invoices(
            as_tenant, InvoiceFilters(lead_id=lead_id))] == [lead_id]
        assert [i.invoice_number for i in repository.list_invoices(
            as_tenant, InvoiceFilters(unpaid_only=True))] == ["INV-20260301-0002"]

    def test_list_newest_first_with_paging(self, repository, as_tenant):
        base = now_utc()
        for n in range(5):
            repository.insert_invoice(_invoice(
                as_tenant, f"INV-20260301-000{n + 1}", created_at=base + timedelta(seconds=n),
            ))

        page = repository.list_invoices(as_tenant, InvoiceFilters(limit=2, offset=1))
        assert [i.invoice_number for i in page] == ["INV-20260301-0004", "INV-20260301-0003"]

    def test_list_past_due(self, repository, as_tenant):
        due = date(2026, 3, 15)
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001", status=InvoiceStatus.SENT))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0002", status=InvoiceStatus.PARTIALLY_PAID))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0003", status=InvoiceStatus.PAID))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0004", status=InvoiceStatus.DRAFT))

        past_due = repository.list_past_due(as_tenant, due + timedelta(days=1))
        assert {i.invoice_number for i in past_due} == {"INV-20260301-0001", "INV-20260301-0002"}
        assert repository.list_past_due(as_tenant, due) == []


class TestCompareAndSwap:

    def test_update_bumps_version(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))

        updated = repository.update_invoice(
            stored.model_copy(update={"status": InvoiceStatus.OVERDUE}), expected_version=1
        )

        assert updated.version == 2
        assert repository.get_invoice(stored.id).status == InvoiceStatus.OVERDUE

    def test_stale_version_conflicts(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        repository.update_invoice(stored, expected_version=1)

        with pytest.raises(ConcurrencyConflictError):
            repository.update_invoice(stored.model_copy(update={"status": InvoiceStatus.PAID}), expected_version=1)

        assert repository.get_invoice(stored.id).status == InvoiceStatus.SENT

    def test_update_missing_invoice(self, repository, as_tenant):
        with pytest.raises(InvoiceNotFoundError):
            repository.update_invoice(_invoice(as_tenant), expected_version=1)


class TestCommitPayment:

    def test_commit_writes_invoice_and_payment(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        payment = _payment(stored)

        updated = repository.commit_payment(
            stored.model_copy(update={"amount_paid_cents": 4000, "status": InvoiceStatus.PARTIALLY_PAID}),
            payment,
            expected_version=1,
        )

        assert updated.version == 2
        assert repository.list_payments(stored.id) == [payment]
        assert repository.get_payment(payment.id) == payment
        assert repository.find_payment_by_external_id(stored.id, "ch_1") == payment

    def test_stale_commit_writes_nothing(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        repository.update_invoice(stored, expected_version=1)

        with pytest.raises(ConcurrencyConflictError):
            repository.commit_payment(stored, _payment(stored), expected_version=1)

        assert repository.list_payments(stored.id) == []
        assert repository.find_payment_by_external_id(stored.id, "ch_1") is None

    def test_duplicate_external_id_conflicts(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        repository.commit_payment(stored, _payment(stored), expected_version=1)

        with pytest.raises(ConcurrencyConflictError):
            repository.commit_payment(stored, _payment(stored, external_id="ch_1"), expected_version=2)

        assert len(repository.list_payments(stored.id)) == 1

    def test_payments_oldest_first(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        first = _payment(stored, 1000, "ch_a")
        second = _payment(stored, 2000, "ch_b")
        repository.commit_payment(stored, first, expected_version=1)
        repository.commit_payment(stored, second, expected_version=2)

        assert repository.list_payments(stored.id) == [first, second]

    def test_payments_hidden_from_other_tenant(self, repository, tenant_id, tenant_b_id):
        with tenant_context(tenant_id):
            stored = repository.insert_invoice(_invoice(tenant_id))
            payment = _payment(stored)
            repository.commit_payment(stored, payment, expected_version=1)

        with tenant_context(tenant_b_id):
            assert repository.get_payment(payment.id) is None
            assert repository.list_payments(stored.id) == []

    def test_commit_appends_audit_entries(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        payment = _payment(stored)

        repository.commit_payment(stored, payment, expected_version=1, audit_entries=[_audit_entry(payment)])

        history = repository.list_audit("payment", payment.id)
        assert [e["action"] for e in history] == ["create"]

    def test_stale_commit_writes_no_audit(self, repository, as_tenant):
        stored = repository.insert_invoice(_invoice(as_tenant))
        repository.update_invoice(stored, expected_version=1)
        payment = _payment(stored)

        with pytest.raises(ConcurrencyConflictError):
            repository.commit_payment(stored, payment, expected_version=1, audit_entries=[_audit_entry(payment)])

        assert repository.list_audit("payment", payment.id) == []


class TestTenantStats:

    def test_counts_and_totals(self, repository, as_tenant):
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0001", status=InvoiceStatus.DRAFT))
        sent = repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0002"))
        repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0003", status=InvoiceStatus.OVERDUE))
        paid = repository.insert_invoice(_invoice(as_tenant, "INV-20260301-0004"))
        repository.commit_payment(
            paid.model_copy(update={"amount_paid_cents": 10000, "status": InvoiceStatus.PAID}),
            _payment(paid, 10000, "ch_paid"),
            expected_version=1,
        )
        repository.commit_payment(
            sent.model_copy(update={"amount_paid_cents": 2500, "status": InvoiceStatus.PARTIALLY_PAID}),
            _payment(sent, 2500, "ch_part"),
            expected_version=1,
        )

        stats = repository.tenant_stats(as_tenant)

        assert stats.invoice_count == 4
        assert stats.counts_by_status == {"draft": 1, "partially_paid": 1, "overdue": 1, "paid": 1}
        assert stats.total_billed_cents == 30000
        assert stats.gross_collected_cents == 12500
        assert stats.net_settlement_cents == 12500
        assert stats.outstanding_cents == 7500 + 10000

    def test_other_tenant_sees_empty_stats(self, repository, tenant_id, tenant_b_id):
        with tenant_context(tenant_id):
            repository.insert_invoice(_invoice(tenant_id))

        with tenant_context(tenant_b_id):
            assert repository.tenant_stats(tenant_b_id).invoice_count == 0
            # No peeking at a tenant other than the one in context
            assert repository.tenant_stats(tenant_id).invoice_count == 0
