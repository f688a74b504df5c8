from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JsonType, utcnow


class AuditLogEntry(Base):
    """
    Immutable audit trail record.
    - Append-only (never UPDATE, never DELETE)
    - Written in the same transaction as the change it documents
    - before/after hold whole-entity snapshots
    """
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    # Actor (absent for system actions)
    actor_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # What happened
    action: Mapped[str] = mapped_column(String(96), nullable=False)  # e.g., BUDGET_SSOT_STATUS_CHANGED
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    before_state: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    after_state: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)
    payload_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    # Request correlation
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_audit_entity", "entity_type", "entity_id"),
        Index("ix_audit_actor", "actor_id"),
        Index("ix_audit_action", "action"),
        Index("ix_audit_created", "created_at"),
    )
