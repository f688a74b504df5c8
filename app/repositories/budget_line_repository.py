# app/repositories/budget_line_repository.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.budget import BudgetLine
from app.models.enums import BudgetLineStatus

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class NewBudgetLine:
    description: str
    unit: str
    qty: Decimal
    unit_cost: Decimal
    currency: Optional[str] = None  # defaults to the budget currency
    template_line_id: Optional[uuid.UUID] = None
    category_id: Optional[uuid.UUID] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    notes: Optional[str] = None
    status: BudgetLineStatus = BudgetLineStatus.DRAFT


@dataclass(frozen=True)
class BudgetLineUpdate:
    """Mutable columns of a budget line. None means "leave unchanged"."""
    category_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    unit: Optional[str] = None
    qty: Optional[Decimal] = None
    unit_cost: Optional[Decimal] = None
    currency: Optional[str] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[BudgetLineStatus] = None


def line_cost(qty: Decimal, unit_cost: Decimal) -> Decimal:
    return Decimal(qty) * Decimal(unit_cost)


class BudgetLineRepository:
    def find_by_id(self, db: Session, line_id: uuid.UUID) -> Optional[BudgetLine]:
        return db.execute(select(BudgetLine).where(BudgetLine.id == line_id)).scalar_one_or_none()

    def find_by_budget(self, db: Session, budget_id: uuid.UUID) -> List[BudgetLine]:
        return list(
            db.execute(
                select(BudgetLine)
                .where(BudgetLine.budget_id == budget_id)
                .order_by(BudgetLine.created_at, BudgetLine.id)
            ).scalars().all()
        )

    def sum_line_costs(self, db: Session, budget_id: uuid.UUID) -> Decimal:
        """
        Σ(qty × unit_cost) over the complete, current line set of a budget.

        Computed in Decimal from the stored rows, never incrementally.
        """
        total = sum(
            (line_cost(line.qty, line.unit_cost) for line in self.find_by_budget(db, budget_id)),
            Decimal("0"),
        )
        return total.quantize(CENTS, rounding=ROUND_HALF_UP)

    def create(
        self,
        db: Session,
        *,
        budget_id: uuid.UUID,
        line: NewBudgetLine,
        currency: str,
        created_by: str,
    ) -> BudgetLine:
        row = BudgetLine(
            id=uuid.uuid4(),
            budget_id=budget_id,
            template_line_id=line.template_line_id,
            category_id=line.category_id,
            description=line.description,
            unit=line.unit,
            qty=Decimal(line.qty),
            unit_cost=Decimal(line.unit_cost),
            currency=line.currency or currency,
            period_from=line.period_from,
            period_to=line.period_to,
            notes=line.notes,
            status=line.status.value,
            created_by=created_by,
            created_at=utcnow(),
        )
        db.add(row)
        db.flush()
        return row

    def update(self, db: Session, line_id: uuid.UUID, changes: BudgetLineUpdate) -> Optional[BudgetLine]:
        row = db.get(BudgetLine, line_id)
        if row is None:
            return None

        if changes.category_id is not None:
            row.category_id = changes.category_id
        if changes.description is not None:
            row.description = changes.description
        if changes.unit is not None:
            row.unit = changes.unit
        if changes.qty is not None:
            row.qty = Decimal(changes.qty)
        if changes.unit_cost is not None:
            row.unit_cost = Decimal(changes.unit_cost)
        if changes.currency is not None:
            row.currency = changes.currency
        if changes.period_from is not None:
            row.period_from = changes.period_from
        if changes.period_to is not None:
            row.period_to = changes.period_to
        if changes.notes is not None:
            row.notes = changes.notes
        if changes.status is not None:
            row.status = changes.status.value

        db.flush()
        return row

    def delete(self, db: Session, line_id: uuid.UUID) -> None:
        row = db.get(BudgetLine, line_id)
        if row is not None:
            db.delete(row)
            db.flush()

    def delete_by_budget(self, db: Session, budget_id: uuid.UUID) -> None:
        db.execute(delete(BudgetLine).where(BudgetLine.budget_id == budget_id))
        db.flush()
