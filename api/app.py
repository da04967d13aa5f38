"""FastAPI application factory and service wiring."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.base import success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, TenantMiddleware
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.repositories import InMemoryLedgerRepository, LedgerRepository, PostgresLedgerRepository
from core.services.invoice_service import InvoiceService
from core.services.payment_ledger import PaymentLedger

logger = logging.getLogger(__name__)


def build_repository(config: LedgerConfig) -> LedgerRepository:
    """Repository for config.storage. Postgres credentials come from Vault."""
    if config.storage == "postgres":
        return PostgresLedgerRepository(PostgresClient(get_database_url()))

    return InMemoryLedgerRepository()


def build_services(
    config: LedgerConfig,
    repository: LedgerRepository | None = None,
    event_bus: EventBus | None = None,
) -> dict:
    """Wire the invoice service and payment ledger around one repository."""
    repository = repository or build_repository(config)
    event_bus = event_bus or EventBus()
    audit = AuditLogger(repository)

    return {
        "invoice": InvoiceService(repository, audit, event_bus, config),
        "payment": PaymentLedger(repository, audit, event_bus, config),
    }


def create_app(config: LedgerConfig | None = None, services: dict | None = None) -> FastAPI:
    """
    Build the ledger HTTP app.

    Args:
        config: Ledger configuration (defaults to LedgerConfig())
        services: Pre-built {"invoice": ..., "payment": ...}; built from
            config when omitted

    Returns:
        FastAPI app serving /api/actions, /api/data and /health
    """
    config = config or LedgerConfig()
    services = services or build_services(config)

    app = FastAPI(title="Invoice Ledger")
    app.add_middleware(TenantMiddleware)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    async def health():
        return success_response({"status": "ok", "storage": config.storage}).model_dump(mode="json")

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    logger.info("Ledger app created (storage=%s)", config.storage)
    return app
