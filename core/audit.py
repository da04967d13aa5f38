"""
Audit trail for invoice and payment changes.

Every ledger mutation is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Tenant-attributed (which tenant's books changed)
- Detailed (captures old and new values)

The audit_log table has NO RLS - all audit entries are visible regardless of
tenant context. This is intentional for administrative oversight.
"""

from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from core.repositories.base import LedgerRepository
from utils.tenant_context import peek_current_tenant_id
from utils.timezone import now_utc


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at", "version"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at", "version"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail for ledger changes.

    IMPORTANT: Always use model_dump(mode="json") when passing Pydantic models
    so UUIDs, Decimals and datetimes are stored as JSON-compatible strings.

    Usage:
        audit = AuditLogger(repository)

        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.CREATE,
            changes={"created": invoice.model_dump(mode="json")}
        )

        changes = compute_changes(
            old.model_dump(mode="json"),
            new.model_dump(mode="json")
        )
        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.UPDATE,
            changes=changes
        )

        history = audit.get_entity_history("invoice", invoice.id)
    """

    def __init__(self, repository: LedgerRepository):
        self.repository = repository

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        tenant_id: UUID | None = None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: Type of entity ("invoice", "payment")
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE)
            changes: The changes made (format depends on action)
            tenant_id: Owning tenant (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        """
        self.repository.append_audit(
            self.build_entry(entity_type, entity_id, action, changes, tenant_id)
        )

    def build_entry(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        tenant_id: UUID | None = None
    ) -> dict[str, Any]:
        """
        Build an audit entry without writing it.

        For writes that must land in the same transaction as the change
        they describe (see LedgerRepository.commit_payment).
        """
        if tenant_id is None:
            tenant_id = peek_current_tenant_id()

        return {
            "id": uuid4(),
            "tenant_id": tenant_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action.value,
            "changes": changes,
            "created_at": now_utc(),
        }

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: UUID
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        return self.repository.list_audit(entity_type, entity_id)
