# app/repositories/contract_repository.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.contract import Contract, ContractTemplate
from app.models.enums import ContractState


@dataclass(frozen=True)
class ContractUpdate:
    """Mutable columns of a contract. None means "leave unchanged"."""
    state: Optional[ContractState] = None
    title: Optional[str] = None
    generated_docx_key: Optional[str] = None
    approved_docx_key: Optional[str] = None
    signed_pdf_key: Optional[str] = None
    approval_provider: Optional[str] = None
    approval_ref: Optional[str] = None
    signing_envelope_id: Optional[str] = None
    substatus_json: Optional[Dict[str, Any]] = None
    metadata_json: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None


class ContractRepository:
    # ---------------------------
    # READS
    # ---------------------------

    def find_by_id(self, db: Session, contract_id: uuid.UUID, *, for_update: bool = False) -> Optional[Contract]:
        stmt = select(Contract).where(Contract.id == contract_id)
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()

    def find_by_number(self, db: Session, number: str) -> Optional[Contract]:
        return db.execute(select(Contract).where(Contract.number == number)).scalar_one_or_none()

    def find_by_project(self, db: Session, project_id: uuid.UUID) -> List[Contract]:
        return list(
            db.execute(
                select(Contract)
                .where(Contract.project_id == project_id)
                .order_by(desc(Contract.created_at))
            ).scalars().all()
        )

    def find_by_partner(self, db: Session, partner_id: uuid.UUID) -> List[Contract]:
        return list(
            db.execute(
                select(Contract)
                .where(Contract.partner_id == partner_id)
                .order_by(desc(Contract.created_at))
            ).scalars().all()
        )

    def find_by_project_and_partner(
        self, db: Session, project_id: uuid.UUID, partner_id: uuid.UUID
    ) -> List[Contract]:
        return list(
            db.execute(
                select(Contract)
                .where(Contract.project_id == project_id, Contract.partner_id == partner_id)
                .order_by(desc(Contract.created_at))
            ).scalars().all()
        )

    def find_by_state(self, db: Session, state: ContractState) -> List[Contract]:
        return list(
            db.execute(
                select(Contract)
                .where(Contract.state == state.value)
                .order_by(desc(Contract.updated_at))
            ).scalars().all()
        )

    def find_by_budget(self, db: Session, budget_id: uuid.UUID) -> List[Contract]:
        return list(
            db.execute(
                select(Contract)
                .where(Contract.budget_id == budget_id)
                .order_by(desc(Contract.created_at))
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
        budget_id: uuid.UUID,
        template_id: uuid.UUID,
        number: str,
        title: str,
        created_by: str,
    ) -> Contract:
        now = utcnow()
        row = Contract(
            id=uuid.uuid4(),
            project_id=project_id,
            partner_id=partner_id,
            budget_id=budget_id,
            template_id=template_id,
            number=number,
            title=title,
            state=ContractState.DRAFT.value,
            substatus_json={},
            metadata_json={},
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return row

    def update(self, db: Session, contract_id: uuid.UUID, changes: ContractUpdate) -> Optional[Contract]:
        row = db.get(Contract, contract_id)
        if row is None:
            return None

        if changes.state is not None:
            row.state = changes.state.value
        if changes.title is not None:
            row.title = changes.title
        if changes.generated_docx_key is not None:
            row.generated_docx_key = changes.generated_docx_key
        if changes.approved_docx_key is not None:
            row.approved_docx_key = changes.approved_docx_key
        if changes.signed_pdf_key is not None:
            row.signed_pdf_key = changes.signed_pdf_key
        if changes.approval_provider is not None:
            row.approval_provider = changes.approval_provider
        if changes.approval_ref is not None:
            row.approval_ref = changes.approval_ref
        if changes.signing_envelope_id is not None:
            row.signing_envelope_id = changes.signing_envelope_id
        # JSON columns are replaced wholesale so the change is tracked
        if changes.substatus_json is not None:
            row.substatus_json = dict(changes.substatus_json)
        if changes.metadata_json is not None:
            row.metadata_json = dict(changes.metadata_json)
        row.updated_at = changes.updated_at or utcnow()

        db.flush()
        return row


class ContractTemplateRepository:
    def find_by_id(self, db: Session, template_id: uuid.UUID) -> Optional[ContractTemplate]:
        return db.execute(
            select(ContractTemplate).where(ContractTemplate.id == template_id)
        ).scalar_one_or_none()

    def find_active(self, db: Session) -> List[ContractTemplate]:
        return list(
            db.execute(
                select(ContractTemplate)
                .where(ContractTemplate.is_active.is_(True))
                .order_by(ContractTemplate.name, desc(ContractTemplate.version))
            ).scalars().all()
        )

    def create(
        self,
        db: Session,
        *,
        name: str,
        content: str,
        created_by: str,
        description: Optional[str] = None,
        version: int = 1,
        is_active: bool = True,
    ) -> ContractTemplate:
        now = utcnow()
        row = ContractTemplate(
            id=uuid.uuid4(),
            name=name,
            description=description,
            content=content,
            version=version,
            is_active=is_active,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.flush()
        return row

    def set_active(self, db: Session, template_id: uuid.UUID, is_active: bool) -> Optional[ContractTemplate]:
        row = db.get(ContractTemplate, template_id)
        if row is None:
            return None
        row.is_active = is_active
        row.updated_at = utcnow()
        db.flush()
        return row
