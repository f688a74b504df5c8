# app/repositories/budget_repository.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.budget import Budget
from app.models.enums import BudgetStatus


@dataclass(frozen=True)
class BudgetUpdate:
    """
    Mutable columns of a budget. None means "leave unchanged".

    ceiling_total is only ever written by the engine after recomputing it
    from the line set.
    """
    currency: Optional[str] = None
    template_id: Optional[uuid.UUID] = None
    rules_json: Optional[Dict[str, Any]] = None
    ceiling_total: Optional[Decimal] = None
    status: Optional[BudgetStatus] = None
    updated_at: Optional[datetime] = None


class BudgetRepository:
    # ---------------------------
    # READS
    # ---------------------------

    def find_by_id(self, db: Session, budget_id: uuid.UUID, *, for_update: bool = False) -> Optional[Budget]:
        stmt = select(Budget).where(Budget.id == budget_id)
        if for_update:
            # serialize transitions per budget row
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()

    def find_by_project(self, db: Session, project_id: uuid.UUID) -> List[Budget]:
        return list(
            db.execute(
                select(Budget)
                .where(Budget.project_id == project_id)
                .order_by(Budget.partner_id, desc(Budget.created_at))
            ).scalars().all()
        )

    def find_by_partner(self, db: Session, partner_id: uuid.UUID) -> List[Budget]:
        return list(
            db.execute(
                select(Budget)
                .where(Budget.partner_id == partner_id)
                .order_by(Budget.project_id, desc(Budget.created_at))
            ).scalars().all()
        )

    def find_by_project_and_partner(
        self, db: Session, project_id: uuid.UUID, partner_id: uuid.UUID
    ) -> List[Budget]:
        return list(
            db.execute(
                select(Budget)
                .where(Budget.project_id == project_id, Budget.partner_id == partner_id)
                .order_by(desc(Budget.created_at))
            ).scalars().all()
        )

    def find_by_status(self, db: Session, status: BudgetStatus) -> List[Budget]:
        return list(
            db.execute(
                select(Budget)
                .where(Budget.status == status.value)
                .order_by(desc(Budget.updated_at))
            ).scalars().all()
        )

    # ---------------------------
    # MUTATIONS
    # ---------------------------

    def create(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        partner_id: uuid.UUID,
        currency: str,
        created_by: str,
        template_id: Optional[uuid.UUID] = None,
        rules_json: Optional[Dict[str, Any]] = None,
    ) -> Budget:
        now = utcnow()
        row = Budget(
            id=uuid.uuid4(),
            project_id=project_id,
            partner_id=partner_id,
            template_id=template_id,
            currency=currency,
            ceiling_total=Decimal("0.00"),
            status=BudgetStatus.DRAFT.value,
            rules_json=rules_json or {},
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return row

    def update(self, db: Session, budget_id: uuid.UUID, changes: BudgetUpdate) -> Optional[Budget]:
        row = db.get(Budget, budget_id)
        if row is None:
            return None

        if changes.currency is not None:
            row.currency = changes.currency
        if changes.template_id is not None:
            row.template_id = changes.template_id
        if changes.rules_json is not None:
            row.rules_json = dict(changes.rules_json)
        if changes.ceiling_total is not None:
            row.ceiling_total = changes.ceiling_total
        if changes.status is not None:
            row.status = changes.status.value
        row.updated_at = changes.updated_at or utcnow()

        db.flush()
        return row

    def delete(self, db: Session, budget_id: uuid.UUID) -> None:
        row = db.get(Budget, budget_id)
        if row is not None:
            db.delete(row)
            db.flush()
