#app/models/budget.py
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String,
    Text,
    Date,
    DateTime,
    Numeric,
    ForeignKey,
    CheckConstraint,
    Index,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, JsonType, utcnow
from app.models.enums import BudgetStatus, BudgetLineStatus


class Budget(Base):
    """
    Partner budget, the single source of truth for a partner's ceiling on a project.

    - ceiling_total is derived: Σ(qty × unit_cost) over the current line set.
    - LOCKED budgets are immutable (lines included).
    """

    __tablename__ = "partner_budgets_ssot"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    project_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    partner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("budget_templates.id", ondelete="SET NULL"), nullable=True
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    ceiling_total: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BudgetStatus.DRAFT.value,
        server_default=text(f"'{BudgetStatus.DRAFT.value}'"),
    )
    rules_json: Mapped[Dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    lines: Mapped[List["BudgetLine"]] = relationship(
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetLine.created_at",
    )

    __table_args__ = (
        CheckConstraint("ceiling_total >= 0", name="ck_budget_ceiling_nonnegative"),
        Index("ix_budget_project_partner", "project_id", "partner_id"),
        Index("ix_budget_status", "status"),
    )


class BudgetLine(Base):
    __tablename__ = "partner_budget_lines_ssot"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    budget_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("partner_budgets_ssot.id", ondelete="CASCADE"), nullable=False
    )
    template_line_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("budget_template_lines.id", ondelete="SET NULL"), nullable=True
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    qty: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # line period
    period_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    period_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BudgetLineStatus.DRAFT.value
    )

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    budget: Mapped[Budget] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_budget_line_qty_nonnegative"),
        CheckConstraint("unit_cost >= 0", name="ck_budget_line_cost_nonnegative"),
        Index("ix_budget_line_budget", "budget_id"),
    )
