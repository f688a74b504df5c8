# app/services/budget_ssot_service.py
from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from app.core.budget_status_graph import assert_status_transition
from app.core.errors import Locked, NotFound, PreconditionFailed
from app.db.base import utcnow
from app.db.unit_of_work import Database
from app.models.budget import Budget
from app.models.enums import BudgetStatus, EntityType, TemplateStatus
from app.repositories.budget_line_repository import (
    BudgetLineRepository,
    BudgetLineUpdate,
    NewBudgetLine,
)
from app.repositories.budget_repository import BudgetRepository, BudgetUpdate
from app.repositories.budget_template_repository import BudgetTemplateRepository
from app.services.audit_service import AuditAction, AuditContext, AuditTrailRecorder
from app.services.idempotency_service import IdempotencyLedger, resolve_request_hash
from app.services.snapshots import budget_snapshot, line_snapshot, lines_snapshot

ACTION_STATUS_TRANSITION = "BUDGET_SSOT_STATUS_TRANSITION"


class BudgetSSOTService:
    """
    Lifecycle engine for partner budgets.

    Every mutation runs in one transaction: load under row lock -> validate
    -> mutate through repositories -> audit -> commit. Responses are
    JSON-ready snapshots (see app.services.snapshots).
    """

    def __init__(
        self,
        database: Database,
        *,
        budgets: Optional[BudgetRepository] = None,
        lines: Optional[BudgetLineRepository] = None,
        templates: Optional[BudgetTemplateRepository] = None,
        audit: Optional[AuditTrailRecorder] = None,
        ledger: Optional[IdempotencyLedger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.database = database
        self.budgets = budgets or BudgetRepository()
        self.lines = lines or BudgetLineRepository()
        self.templates = templates or BudgetTemplateRepository()
        self.audit = audit or AuditTrailRecorder()
        self.ledger = ledger or IdempotencyLedger()
        self.log = logger or logging.getLogger(__name__)

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def load_for_update(self, db: Session, budget_id: uuid.UUID) -> Budget:
        budget = self.budgets.find_by_id(db, budget_id, for_update=True)
        if budget is None:
            raise NotFound("Budget not found.", details={"budgetId": str(budget_id)})
        return budget

    @staticmethod
    def _assert_mutable(budget: Budget, message: str) -> None:
        if budget.status == BudgetStatus.LOCKED.value:
            raise Locked(message, details={"budgetId": str(budget.id)})

    def _assert_template_usable(self, db: Session, template_id: uuid.UUID) -> None:
        template = self.templates.find_by_id(db, template_id)
        if template is None or template.status == TemplateStatus.ARCHIVED.value:
            raise PreconditionFailed(
                "Budget template not found or archived.",
                details={"templateId": str(template_id)},
            )

    def _assert_template_lines(self, db: Session, budget: Budget, new_lines: Sequence[NewBudgetLine]) -> None:
        """Template-bound lines must come from the budget's template and respect max_lines."""
        wanted = Counter(line.template_line_id for line in new_lines if line.template_line_id)
        for template_line_id, adding in wanted.items():
            slot = self.templates.find_line_by_id(db, template_line_id)
            if slot is None or budget.template_id is None or slot.template_id != budget.template_id:
                raise PreconditionFailed(
                    "Budget line references a template line outside the budget's template.",
                    details={"templateLineId": str(template_line_id)},
                )
            if slot.max_lines is not None:
                existing = sum(
                    1 for line in self.lines.find_by_budget(db, budget.id)
                    if line.template_line_id == template_line_id
                )
                if existing + adding > slot.max_lines:
                    raise PreconditionFailed(
                        f"Template line allows at most {slot.max_lines} budget lines.",
                        details={"templateLineId": str(template_line_id)},
                    )

    def _recompute_ceiling(self, db: Session, budget_id: uuid.UUID) -> Budget:
        # over the complete line set, never incrementally
        total = self.lines.sum_line_costs(db, budget_id)
        return self.budgets.update(db, budget_id, BudgetUpdate(ceiling_total=total, updated_at=utcnow()))

    def change_status(
        self,
        db: Session,
        budget: Budget,
        next_status: Union[BudgetStatus, str],
        *,
        actor_id: Optional[str],
        context: Optional[AuditContext] = None,
        cause: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        In-transaction status change: validate, persist, audit.

        Shared by transition_status and contract activation (which locks the
        referenced budget inside its own transaction).
        """
        target = assert_status_transition(budget.status, next_status)
        before = budget_snapshot(budget)

        updated = self.budgets.update(db, budget.id, BudgetUpdate(status=target, updated_at=utcnow()))
        after = budget_snapshot(updated)

        payload: Dict[str, Any] = {"from": before["status"], "to": target.value}
        if cause:
            payload["cause"] = cause

        self.audit.record(
            db,
            actor_id=actor_id,
            action=AuditAction.BUDGET_SSOT_STATUS_CHANGED,
            entity_type=EntityType.BUDGET.value,
            entity_id=str(budget.id),
            before=before,
            after=after,
            payload=payload,
            context=context,
        )
        return before, after

    # ─────────────────────────────────────────────
    # MUTATIONS
    # ─────────────────────────────────────────────

    def create_budget(
        self,
        *,
        project_id: uuid.UUID,
        partner_id: uuid.UUID,
        currency: str,
        actor_id: str,
        template_id: Optional[uuid.UUID] = None,
        rules_json: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        with self.database.transaction() as db:
            if template_id is not None:
                self._assert_template_usable(db, template_id)

            budget = self.budgets.create(
                db,
                project_id=project_id,
                partner_id=partner_id,
                currency=currency.upper(),
                created_by=actor_id,
                template_id=template_id,
                rules_json=rules_json,
            )
            snapshot = budget_snapshot(budget)

            self.audit.record(
                db,
                actor_id=actor_id,
                action=AuditAction.BUDGET_SSOT_CREATED,
                entity_type=EntityType.BUDGET.value,
                entity_id=str(budget.id),
                after=snapshot,
                context=context,
            )

        self.log.info("budget_created", extra={"budget_id": snapshot["id"], "actor_id": actor_id})
        return snapshot

    def update_budget(
        self,
        budget_id: uuid.UUID,
        *,
        actor_id: str,
        currency: Optional[str] = None,
        template_id: Optional[uuid.UUID] = None,
        rules_json: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """Status and ceiling are not writable here (transition_status / line operations)."""
        with self.database.transaction() as db:
            current = self.load_for_update(db, budget_id)
            self._assert_mutable(current, "Cannot update a locked budget.")
            if template_id is not None:
                self._assert_template_usable(db, template_id)

            before = budget_snapshot(current)
            updated = self.budgets.update(
                db,
                budget_id,
                BudgetUpdate(
                    currency=currency.upper() if currency else None,
                    template_id=template_id,
                    rules_json=rules_json,
                    updated_at=utcnow(),
                ),
            )
            after = budget_snapshot(updated)

            self.audit.record(
                db,
                actor_id=actor_id,
                action=AuditAction.BUDGET_SSOT_UPDATED,
                entity_type=EntityType.BUDGET.value,
                entity_id=str(budget_id),
                before=before,
                after=after,
                payload={
                    "changes": {
                        k: v for k, v in {
                            "currency": currency,
                            "templateId": str(template_id) if template_id else None,
                            "rules": rules_json,
                        }.items() if v is not None
                    }
                },
                context=context,
            )
        return after

    def add_budget_lines(
        self,
        budget_id: uuid.UUID,
        new_lines: Sequence[NewBudgetLine],
        *,
        actor_id: str,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """
        Insert lines and recompute ceiling_total over the full line set.
        Returns {"budget": ..., "lines": [every line of the budget]}.
        """
        if not new_lines:
            raise PreconditionFailed("At least one budget line is required.")

        with self.database.transaction() as db:
            budget = self.load_for_update(db, budget_id)
            self._assert_mutable(budget, "Cannot add lines to a locked budget.")
            self._assert_template_lines(db, budget, new_lines)

            before = budget_snapshot(budget)
            created = [
                self.lines.create(
                    db,
                    budget_id=budget_id,
                    line=line,
                    currency=budget.currency,
                    created_by=actor_id,
                )
                for line in new_lines
            ]
            updated = self._recompute_ceiling(db, budget_id)
            after = budget_snapshot(updated)

            self.audit.record(
                db,
                actor_id=actor_id,
                action=AuditAction.BUDGET_SSOT_LINES_ADDED,
                entity_type=EntityType.BUDGET.value,
                entity_id=str(budget_id),
                before=before,
                after=after,
                payload={"lines": lines_snapshot(created), "ceilingTotal": after["ceilingTotal"]},
                context=context,
            )
            result = {"budget": after, "lines": lines_snapshot(self.lines.find_by_budget(db, budget_id))}

        self.log.info(
            "budget_lines_added",
            extra={"budget_id": str(budget_id), "count": len(created), "ceiling_total": after["ceilingTotal"]},
        )
        return result

    def update_budget_lines(
        self,
        updates: Sequence[Tuple[uuid.UUID, BudgetLineUpdate]],
        *,
        actor_id: str,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        if not updates:
            raise PreconditionFailed("At least one line update is required.")

        with self.database.transaction() as db:
            touched: Dict[uuid.UUID, Dict[str, Any]] = {}
            changes_by_budget: Dict[uuid.UUID, List[Dict[str, Any]]] = {}
            updated_lines = []

            for line_id, changes in updates:
                current = self.lines.find_by_id(db, line_id)
                if current is None:
                    raise NotFound(f"Budget line {line_id} not found.", details={"lineId": str(line_id)})

                budget = self.load_for_update(db, current.budget_id)
                self._assert_mutable(budget, "Cannot update lines in a locked budget.")
                touched.setdefault(budget.id, budget_snapshot(budget))

                line_before = line_snapshot(current)
                updated = self.lines.update(db, line_id, changes)
                updated_lines.append(updated)
                changes_by_budget.setdefault(budget.id, []).append(
                    {"before": line_before, "after": line_snapshot(updated)}
                )

            budgets_after = []
            for budget_id, before in touched.items():
                after = budget_snapshot(self._recompute_ceiling(db, budget_id))
                budgets_after.append(after)
                self.audit.record(
                    db,
                    actor_id=actor_id,
                    action=AuditAction.BUDGET_SSOT_LINES_UPDATED,
                    entity_type=EntityType.BUDGET.value,
                    entity_id=str(budget_id),
                    before=before,
                    after=after,
                    payload={"lines": changes_by_budget[budget_id]},
                    context=context,
                )

            return {"lines": lines_snapshot(updated_lines), "budgets": budgets_after}

    def delete_budget_lines(
        self,
        line_ids: Sequence[uuid.UUID],
        *,
        actor_id: str,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        if not line_ids:
            raise PreconditionFailed("At least one line id is required.")

        with self.database.transaction() as db:
            touched: Dict[uuid.UUID, Dict[str, Any]] = {}
            removed_by_budget: Dict[uuid.UUID, List[Dict[str, Any]]] = {}

            for line_id in line_ids:
                current = self.lines.find_by_id(db, line_id)
                if current is None:
                    raise NotFound(f"Budget line {line_id} not found.", details={"lineId": str(line_id)})

                budget = self.load_for_update(db, current.budget_id)
                self._assert_mutable(budget, "Cannot delete lines from a locked budget.")
                touched.setdefault(budget.id, budget_snapshot(budget))
                removed_by_budget.setdefault(budget.id, []).append(line_snapshot(current))

                self.lines.delete(db, line_id)

            budgets_after = []
            for budget_id, before in touched.items():
                after = budget_snapshot(self._recompute_ceiling(db, budget_id))
                budgets_after.append(after)
                self.audit.record(
                    db,
                    actor_id=actor_id,
                    action=AuditAction.BUDGET_SSOT_LINES_DELETED,
                    entity_type=EntityType.BUDGET.value,
                    entity_id=str(budget_id),
                    before=before,
                    after=after,
                    payload={"lines": removed_by_budget[budget_id]},
                    context=context,
                )

            return {"deleted": len(line_ids), "budgets": budgets_after}

    def transition_status(
        self,
        budget_id: uuid.UUID,
        next_status: Union[BudgetStatus, str],
        *,
        actor_id: str,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """
        Move a budget along ALLOWED_STATUS_TRANSITIONS.

        With an idempotency key, a completed earlier call is replayed as-is
        and the transition is not applied again.
        """
        req_hash = resolve_request_hash(
            request_hash,
            {
                "action": ACTION_STATUS_TRANSITION,
                "budgetId": str(budget_id),
                "nextStatus": getattr(next_status, "value", next_status),
            },
        )

        with self.database.transaction() as db:
            claim = self.ledger.begin(
                db,
                key=idempotency_key,
                action_key=ACTION_STATUS_TRANSITION,
                actor_id=actor_id,
                request_hash=req_hash,
            )
            if claim.is_replay:
                return claim.replay

            current = self.load_for_update(db, budget_id)
            before, after = self.change_status(
                db, current, next_status, actor_id=actor_id, context=context
            )

            response = {"budget": after}
            self.ledger.finish(db, claim, response)

        self.log.info(
            "budget_status_changed",
            extra={"budget_id": str(budget_id), "from": before["status"], "to": after["status"], "actor_id": actor_id},
        )
        return response

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_budget_with_lines(self, budget_id: uuid.UUID) -> Dict[str, Any]:
        with self.database.reader() as db:
            budget = self.budgets.find_by_id(db, budget_id)
            if budget is None:
                raise NotFound("Budget not found.", details={"budgetId": str(budget_id)})
            return {
                "budget": budget_snapshot(budget),
                "lines": lines_snapshot(self.lines.find_by_budget(db, budget_id)),
            }

    def list_budgets_by_project(self, project_id: uuid.UUID) -> List[Dict[str, Any]]:
        with self.database.reader() as db:
            return [budget_snapshot(b) for b in self.budgets.find_by_project(db, project_id)]

    def list_budgets_by_partner(self, partner_id: uuid.UUID) -> List[Dict[str, Any]]:
        with self.database.reader() as db:
            return [budget_snapshot(b) for b in self.budgets.find_by_partner(db, partner_id)]
