"""GET /api/data - unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.exceptions import InvoiceNotFoundError
from core.models import InvoiceFilters, InvoiceStatus
from utils.tenant_context import get_current_tenant_id


VALID_TYPES = {"invoices", "payments", "summary", "stats"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    ledger = services["payment"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        number: str | None = Query(None),
        invoice_id: str | None = Query(None),
        lead_id: str | None = Query(None),
        status: str | None = Query(None),
        filter: str | None = Query(None),
        include: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        request_id = getattr(request.state, "request_id", None)
        includes = set(include.split(",")) if include else set()

        if type == "invoices":
            data = _handle_invoices(
                invoice_svc, ledger, id, number, lead_id, status, filter, includes, limit, offset
            )
        elif type == "payments":
            data = _handle_payments(ledger, id, invoice_id)
        elif type == "stats":
            data = ledger.tenant_stats(get_current_tenant_id()).model_dump(mode="json")
        else:
            data = _handle_summary(ledger, invoice_id)

        return success_response(data, request_id=request_id).model_dump(mode="json")

    return router


def _handle_invoices(invoice_svc, ledger, id, number, lead_id, status, filter, includes, limit, offset):
    if id or number:
        if id:
            invoice = invoice_svc.get_by_id(UUID(id))
        else:
            invoice = invoice_svc.get_by_number(number)
            if invoice is None:
                raise InvoiceNotFoundError(number)

        data = invoice.model_dump(mode="json")
        if "payments" in includes:
            payments = ledger.list_payments(invoice.id)
            data["payments"] = [p.model_dump(mode="json") for p in payments]
        if "history" in includes:
            data["history"] = invoice_svc.get_history(invoice.id)
        return data

    filters = InvoiceFilters(
        status=InvoiceStatus(status) if status else None,
        lead_id=UUID(lead_id) if lead_id else None,
        unpaid_only=filter == "unpaid",
        limit=limit,
        offset=offset,
    )
    invoices = invoice_svc.list_invoices(get_current_tenant_id(), filters)
    return [i.model_dump(mode="json") for i in invoices]


def _handle_payments(ledger, id, invoice_id):
    if id:
        return ledger.get_payment(UUID(id)).model_dump(mode="json")

    if invoice_id:
        payments = ledger.list_payments(UUID(invoice_id))
        return [p.model_dump(mode="json") for p in payments]

    raise ValueError("'payments' type requires 'id' or 'invoice_id' parameter")


def _handle_summary(ledger, invoice_id):
    if not invoice_id:
        raise ValueError("'summary' type requires 'invoice_id' parameter")

    return ledger.summarize(UUID(invoice_id)).model_dump(mode="json")
