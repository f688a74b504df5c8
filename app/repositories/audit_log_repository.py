# app/repositories/audit_log_repository.py
from __future__ import annotations

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLogEntry


class AuditLogRepository:
    """Read side of the audit trail. Writes go through AuditTrailRecorder only."""

    def find_by_entity(self, db: Session, entity_type: str, entity_id: str) -> List[AuditLogEntry]:
        # oldest first: replaying the rows reconstructs the entity history
        return list(
            db.execute(
                select(AuditLogEntry)
                .where(AuditLogEntry.entity_type == entity_type, AuditLogEntry.entity_id == entity_id)
                .order_by(AuditLogEntry.created_at, AuditLogEntry.id)
            ).scalars().all()
        )

    def find_by_action(self, db: Session, action: str) -> List[AuditLogEntry]:
        return list(
            db.execute(
                select(AuditLogEntry)
                .where(AuditLogEntry.action == action)
                .order_by(AuditLogEntry.created_at)
            ).scalars().all()
        )
