#app/models/contract.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    String,
    Text,
    Boolean,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JsonType, utcnow
from app.models.enums import ContractState


class ContractTemplate(Base):
    __tablename__ = "contract_templates_ssot"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class Contract(Base):
    """
    Grant agreement, the single source of truth for a partner contract.

    References (never owns) an APPROVED/LOCKED budget. Activation locks
    that budget in the same transaction.
    """

    __tablename__ = "contracts_ssot"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    partner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    budget_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("partner_budgets_ssot.id", ondelete="RESTRICT"), nullable=False
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contract_templates_ssot.id", ondelete="RESTRICT"), nullable=False
    )

    number: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    state: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ContractState.DRAFT.value,
        server_default=text(f"'{ContractState.DRAFT.value}'"),
    )

    # document keys (storage lives elsewhere)
    generated_docx_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    approved_docx_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    signed_pdf_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # external approval / e-signature references
    approval_provider: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approval_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    signing_envelope_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    substatus_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("number", name="uq_contract_number"),
        Index("ix_contract_project_partner", "project_id", "partner_id"),
        Index("ix_contract_state", "state"),
        Index("ix_contract_budget", "budget_id"),
    )
