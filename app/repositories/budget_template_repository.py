# app/repositories/budget_template_repository.py
from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.budget_template import BudgetTemplate, BudgetTemplateLine
from app.models.enums import TemplateStatus


class BudgetTemplateRepository:
    def find_by_id(self, db: Session, template_id: uuid.UUID) -> Optional[BudgetTemplate]:
        return db.execute(
            select(BudgetTemplate).where(BudgetTemplate.id == template_id)
        ).scalar_one_or_none()

    def find_lines(self, db: Session, template_id: uuid.UUID) -> List[BudgetTemplateLine]:
        return list(
            db.execute(
                select(BudgetTemplateLine)
                .where(BudgetTemplateLine.template_id == template_id)
                .order_by(BudgetTemplateLine.sort_order)
            ).scalars().all()
        )

    def find_line_by_id(self, db: Session, template_line_id: uuid.UUID) -> Optional[BudgetTemplateLine]:
        return db.execute(
            select(BudgetTemplateLine).where(BudgetTemplateLine.id == template_line_id)
        ).scalar_one_or_none()

    def create(
        self,
        db: Session,
        *,
        name: str,
        created_by: str,
        project_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
        is_default: bool = False,
        status: TemplateStatus = TemplateStatus.PUBLISHED,
    ) -> BudgetTemplate:
        now = utcnow()
        row = BudgetTemplate(
            id=uuid.uuid4(),
            project_id=project_id,
            name=name,
            description=description,
            is_default=is_default,
            status=status.value,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return row

    def create_line(
        self,
        db: Session,
        *,
        template_id: uuid.UUID,
        category_id: Optional[uuid.UUID] = None,
        subcategory: Optional[str] = None,
        guidance: Optional[str] = None,
        required: bool = False,
        min_lines: Optional[int] = None,
        max_lines: Optional[int] = None,
        sort_order: int = 0,
    ) -> BudgetTemplateLine:
        row = BudgetTemplateLine(
            id=uuid.uuid4(),
            template_id=template_id,
            category_id=category_id,
            subcategory=subcategory,
            guidance=guidance,
            required=required,
            min_lines=min_lines,
            max_lines=max_lines,
            sort_order=sort_order,
            created_at=utcnow(),
        )
        db.add(row)
        db.flush()
        return row
