from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.logging import get_audit_logger
from app.db.base import utcnow
from app.models.audit_log import AuditLogEntry


class AuditAction:
    # Budgets
    BUDGET_SSOT_CREATED = "BUDGET_SSOT_CREATED"
    BUDGET_SSOT_UPDATED = "BUDGET_SSOT_UPDATED"
    BUDGET_SSOT_LINES_ADDED = "BUDGET_SSOT_LINES_ADDED"
    BUDGET_SSOT_LINES_UPDATED = "BUDGET_SSOT_LINES_UPDATED"
    BUDGET_SSOT_LINES_DELETED = "BUDGET_SSOT_LINES_DELETED"
    BUDGET_SSOT_STATUS_CHANGED = "BUDGET_SSOT_STATUS_CHANGED"

    # Contracts
    CONTRACT_SSOT_CREATED = "CONTRACT_SSOT_CREATED"
    CONTRACT_SSOT_GENERATED = "CONTRACT_SSOT_GENERATED"
    CONTRACT_SSOT_SUBMITTED_FOR_APPROVAL = "CONTRACT_SSOT_SUBMITTED_FOR_APPROVAL"
    CONTRACT_SSOT_APPROVED = "CONTRACT_SSOT_APPROVED"
    CONTRACT_SSOT_SENT_FOR_SIGN = "CONTRACT_SSOT_SENT_FOR_SIGN"
    CONTRACT_SSOT_SIGNED = "CONTRACT_SSOT_SIGNED"
    CONTRACT_SSOT_ACTIVATED = "CONTRACT_SSOT_ACTIVATED"
    CONTRACT_SSOT_CANCELLED = "CONTRACT_SSOT_CANCELLED"


@dataclass(frozen=True)
class AuditContext:
    """Request correlation captured by the HTTP layer."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


class AuditTrailRecorder:
    """
    Append-only audit insert, executed in the caller's transaction.

    Never commits. A failed write rolls back the whole transition.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or get_audit_logger()

    def record(
        self,
        db: Session,
        *,
        actor_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: str,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> AuditLogEntry:
        ctx = context or AuditContext()
        row = AuditLogEntry(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before_state=before,
            after_state=after,
            payload_json=payload or {},
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            request_id=ctx.request_id,
            created_at=utcnow(),
        )
        try:
            db.add(row)
            db.flush()
        except Exception:
            self.log.error(
                "audit_write_failed",
                extra={"action": action, "entity_type": entity_type, "entity_id": entity_id},
            )
            raise
        return row
