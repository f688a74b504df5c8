# app/api/v1/budgets.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.core.auth_deps import Actor, get_current_actor
from app.core.deps import get_audit_context, get_budget_service
from app.core.deps_idempotency import optional_idempotency_key
from app.repositories.budget_line_repository import BudgetLineUpdate, NewBudgetLine
from app.schemas.budgets import (
    BudgetCreateRequest,
    BudgetLinesAddRequest,
    BudgetLinesDeleteRequest,
    BudgetLinesDeletedResponse,
    BudgetLinesUpdatedResponse,
    BudgetLinesUpdateRequest,
    BudgetOut,
    BudgetResponse,
    BudgetTransitionRequest,
    BudgetUpdateRequest,
    BudgetWithLinesResponse,
)
from app.services.audit_service import AuditContext
from app.services.budget_ssot_service import BudgetSSOTService

router = APIRouter(prefix="/budgets")


# ─────────────────────────────────────────────────────────────
# Line-set routes (declared before /{budgetId})
# ─────────────────────────────────────────────────────────────

@router.patch("/lines", response_model=BudgetLinesUpdatedResponse)
def update_budget_lines(
    body: BudgetLinesUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    updates = [
        (
            patch.id,
            BudgetLineUpdate(
                category_id=patch.categoryId,
                description=patch.description,
                unit=patch.unit,
                qty=patch.qty,
                unit_cost=patch.unitCost,
                currency=patch.currency,
                period_from=patch.periodFrom,
                period_to=patch.periodTo,
                notes=patch.notes,
                status=patch.status,
            ),
        )
        for patch in body.lines
    ]
    return svc.update_budget_lines(updates, actor_id=actor.actor_id, context=ctx)


@router.post("/lines/delete", response_model=BudgetLinesDeletedResponse)
def delete_budget_lines(
    body: BudgetLinesDeleteRequest,
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.delete_budget_lines(body.lineIds, actor_id=actor.actor_id, context=ctx)


# ─────────────────────────────────────────────────────────────
# Listings
# ─────────────────────────────────────────────────────────────

@router.get("/by-project/{projectId}", response_model=List[BudgetOut])
def list_budgets_by_project(
    projectId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.list_budgets_by_project(projectId)


@router.get("/by-partner/{partnerId}", response_model=List[BudgetOut])
def list_budgets_by_partner(
    partnerId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.list_budgets_by_partner(partnerId)


# ─────────────────────────────────────────────────────────────
# Budget
# ─────────────────────────────────────────────────────────────

@router.post("", response_model=BudgetOut, status_code=201)
def create_budget(
    body: BudgetCreateRequest,
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.create_budget(
        project_id=body.projectId,
        partner_id=body.partnerId,
        currency=body.currency,
        actor_id=actor.actor_id,
        template_id=body.templateId,
        rules_json=body.rules,
        context=ctx,
    )


@router.get("/{budgetId}", response_model=BudgetWithLinesResponse)
def get_budget(
    budgetId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.get_budget_with_lines(budgetId)


@router.patch("/{budgetId}", response_model=BudgetOut)
def update_budget(
    budgetId: uuid.UUID,
    body: BudgetUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.update_budget(
        budgetId,
        actor_id=actor.actor_id,
        currency=body.currency,
        template_id=body.templateId,
        rules_json=body.rules,
        context=ctx,
    )


@router.post("/{budgetId}/lines", response_model=BudgetWithLinesResponse, status_code=201)
def add_budget_lines(
    budgetId: uuid.UUID,
    body: BudgetLinesAddRequest,
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    lines = [
        NewBudgetLine(
            description=line.description,
            unit=line.unit,
            qty=line.qty,
            unit_cost=line.unitCost,
            currency=line.currency,
            template_line_id=line.templateLineId,
            category_id=line.categoryId,
            period_from=line.periodFrom,
            period_to=line.periodTo,
            notes=line.notes,
            status=line.status,
        )
        for line in body.lines
    ]
    return svc.add_budget_lines(budgetId, lines, actor_id=actor.actor_id, context=ctx)


@router.post("/{budgetId}/transition", response_model=BudgetResponse)
def transition_budget_status(
    budgetId: uuid.UUID,
    body: BudgetTransitionRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: BudgetSSOTService = Depends(get_budget_service),
):
    return svc.transition_status(
        budgetId,
        body.nextStatus,
        actor_id=actor.actor_id,
        idempotency_key=body.idempotencyKey or header_key,
        request_hash=body.requestHash,
        context=ctx,
    )
