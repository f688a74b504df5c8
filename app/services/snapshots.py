# app/services/snapshots.py
"""
JSON-ready, whole-entity snapshots.

These are what the engine returns, what the audit trail stores as
before/after state and what the idempotency ledger caches, so a replayed
response is byte-for-byte the original one.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.models.budget import Budget, BudgetLine
from app.models.contract import Contract


def _iso(dt: Optional[date | datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _str(v: Any) -> Optional[str]:
    return str(v) if v is not None else None


CENTS = Decimal("0.01")
QTY_PLACES = Decimal("0.0001")


def _money(v: Optional[Decimal], places: Decimal = CENTS) -> Optional[str]:
    # fixed scale, so in-memory and re-read values render the same
    return str(Decimal(v).quantize(places)) if v is not None else None


def budget_snapshot(b: Budget) -> Dict[str, Any]:
    return {
        "id": str(b.id),
        "projectId": str(b.project_id),
        "partnerId": str(b.partner_id),
        "templateId": _str(b.template_id),
        "currency": b.currency,
        "ceilingTotal": _money(b.ceiling_total),
        "status": b.status,
        "rules": dict(b.rules_json or {}),
        "createdBy": b.created_by,
        "createdAt": _iso(b.created_at),
        "updatedAt": _iso(b.updated_at),
    }


def line_snapshot(line: BudgetLine) -> Dict[str, Any]:
    return {
        "id": str(line.id),
        "budgetId": str(line.budget_id),
        "templateLineId": _str(line.template_line_id),
        "categoryId": _str(line.category_id),
        "description": line.description,
        "unit": line.unit,
        "qty": _money(line.qty, QTY_PLACES),
        "unitCost": _money(line.unit_cost),
        "currency": line.currency,
        "periodFrom": _iso(line.period_from),
        "periodTo": _iso(line.period_to),
        "notes": line.notes,
        "status": line.status,
        "createdBy": line.created_by,
        "createdAt": _iso(line.created_at),
    }


def lines_snapshot(lines: List[BudgetLine]) -> List[Dict[str, Any]]:
    return [line_snapshot(line) for line in lines]


def contract_snapshot(c: Contract) -> Dict[str, Any]:
    return {
        "id": str(c.id),
        "projectId": str(c.project_id),
        "partnerId": str(c.partner_id),
        "budgetId": str(c.budget_id),
        "templateId": str(c.template_id),
        "number": c.number,
        "title": c.title,
        "state": c.state,
        "generatedDocxKey": c.generated_docx_key,
        "approvedDocxKey": c.approved_docx_key,
        "signedPdfKey": c.signed_pdf_key,
        "approvalProvider": c.approval_provider,
        "approvalRef": c.approval_ref,
        "signingEnvelopeId": c.signing_envelope_id,
        "substatus": dict(c.substatus_json or {}),
        "metadata": dict(c.metadata_json or {}),
        "createdBy": c.created_by,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
    }
