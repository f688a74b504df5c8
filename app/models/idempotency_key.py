from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, DateTime, UniqueConstraint, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JsonType, utcnow


class IdempotencyRecord(Base):
    """
    Ledger row for a client-supplied idempotency key.

    Lifecycle:
      - reserved: inserted by an atomic insert-or-ignore, response_json IS NULL
      - completed: response_json holds the cached response of the action
    Never deleted; a key is never reused for a different logical request.
    """
    __tablename__ = "action_idempotency"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False)
    action_key: Mapped[str] = mapped_column(String(96), nullable=False)  # e.g. "BUDGET_SSOT_STATUS_TRANSITION"
    actor_user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    response_json: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_action_idempotency_key"),
        Index("ix_action_idempotency_actor", "actor_user_id", "action_key"),
    )

    @property
    def is_completed(self) -> bool:
        return self.response_json is not None
