# app/services/contract_ssot_service.py
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from app.core.contract_state_graph import ContractOperation, assert_operation_allowed
from app.core.errors import NotFound, PreconditionFailed
from app.db.base import utcnow
from app.db.unit_of_work import Database
from app.models.contract import Contract
from app.models.enums import BudgetStatus, ContractState, EntityType
from app.repositories.budget_line_repository import BudgetLineRepository
from app.repositories.budget_repository import BudgetRepository
from app.repositories.contract_repository import (
    ContractRepository,
    ContractTemplateRepository,
    ContractUpdate,
)
from app.services.audit_service import AuditAction, AuditContext, AuditTrailRecorder
from app.services.budget_ssot_service import BudgetSSOTService
from app.services.idempotency_service import IdempotencyLedger, resolve_request_hash
from app.services.snapshots import budget_snapshot, contract_snapshot, lines_snapshot

DEFAULT_CONTRACT_TITLE = "Grant Agreement"

ACTION_CREATE = "CONTRACT_SSOT_CREATE"

# ledger action key + audit action per named operation
OPERATION_ACTIONS: Dict[ContractOperation, str] = {
    ContractOperation.GENERATE: AuditAction.CONTRACT_SSOT_GENERATED,
    ContractOperation.SUBMIT_FOR_APPROVAL: AuditAction.CONTRACT_SSOT_SUBMITTED_FOR_APPROVAL,
    ContractOperation.MARK_APPROVED: AuditAction.CONTRACT_SSOT_APPROVED,
    ContractOperation.SEND_FOR_SIGN: AuditAction.CONTRACT_SSOT_SENT_FOR_SIGN,
    ContractOperation.MARK_SIGNED: AuditAction.CONTRACT_SSOT_SIGNED,
    ContractOperation.ACTIVATE: AuditAction.CONTRACT_SSOT_ACTIVATED,
    ContractOperation.CANCEL: AuditAction.CONTRACT_SSOT_CANCELLED,
}

CONTRACTABLE_BUDGET_STATUSES = {BudgetStatus.APPROVED.value, BudgetStatus.LOCKED.value}

# (db, locked contract, target state) -> changes to persist
ChangeBuilder = Callable[[Session, Contract, ContractState], ContractUpdate]


def generate_contract_number() -> str:
    return f"CN-{utcnow().year}-{secrets.randbelow(1_000_000):06d}"


class ContractSSOTService:
    """
    Lifecycle engine for grant agreements.

    DRAFT -> GENERATED -> SUBMITTED_FOR_APPROVAL -> APPROVED -> SENT_FOR_SIGN
    -> SIGNED -> ACTIVE, with CANCELLED reachable from any pre-sign state.
    Activation locks the referenced budget inside the same transaction.
    """

    def __init__(
        self,
        database: Database,
        *,
        contracts: Optional[ContractRepository] = None,
        templates: Optional[ContractTemplateRepository] = None,
        budgets: Optional[BudgetRepository] = None,
        lines: Optional[BudgetLineRepository] = None,
        audit: Optional[AuditTrailRecorder] = None,
        ledger: Optional[IdempotencyLedger] = None,
        budget_service: Optional[BudgetSSOTService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.database = database
        self.contracts = contracts or ContractRepository()
        self.templates = templates or ContractTemplateRepository()
        self.budgets = budgets or BudgetRepository()
        self.lines = lines or BudgetLineRepository()
        self.audit = audit or AuditTrailRecorder()
        self.ledger = ledger or IdempotencyLedger()
        self.budget_service = budget_service or BudgetSSOTService(
            database,
            budgets=self.budgets,
            lines=self.lines,
            audit=self.audit,
            ledger=self.ledger,
        )
        self.log = logger or logging.getLogger(__name__)

    # ---- INTERNAL --------------------------------------------------------

    def _load_for_update(self, db: Session, contract_id: uuid.UUID) -> Contract:
        contract = self.contracts.find_by_id(db, contract_id, for_update=True)
        if contract is None:
            raise NotFound("Contract not found.", details={"contractId": str(contract_id)})
        return contract

    def _transition(
        self,
        operation: ContractOperation,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        args: Dict[str, Any],
        build_changes: ChangeBuilder,
        idempotency_key: Optional[str],
        request_hash: Optional[str],
        context: Optional[AuditContext],
        after_update: Optional[Callable[[Session, Contract], Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Shared skeleton of every named operation:
        claim key -> lock row -> assert exact state -> update -> audit -> cache.
        """
        action = OPERATION_ACTIONS[operation]
        req_hash = resolve_request_hash(
            request_hash,
            {"action": action, "contractId": str(contract_id), "args": args},
        )

        with self.database.transaction() as db:
            claim = self.ledger.begin(
                db,
                key=idempotency_key,
                action_key=action,
                actor_id=actor_id,
                request_hash=req_hash,
            )
            if claim.is_replay:
                return claim.replay

            contract = self._load_for_update(db, contract_id)
            target = assert_operation_allowed(operation, contract.state)

            before = contract_snapshot(contract)
            changes = build_changes(db, contract, target)
            updated = self.contracts.update(
                db, contract_id, replace(changes, state=target, updated_at=utcnow())
            )
            after = contract_snapshot(updated)

            self.audit.record(
                db,
                actor_id=actor_id,
                action=action,
                entity_type=EntityType.CONTRACT.value,
                entity_id=str(contract_id),
                before=before,
                after=after,
                payload={"operation": operation.value, "from": before["state"], "to": target.value, "args": args},
                context=context,
            )

            response: Dict[str, Any] = {"contract": after}
            if after_update is not None:
                response.update(after_update(db, updated))

            self.ledger.finish(db, claim, response)

        self.log.info(
            "contract_transitioned",
            extra={
                "contract_id": str(contract_id),
                "operation": operation.value,
                "from": before["state"],
                "to": target.value,
                "actor_id": actor_id,
            },
        )
        return response

    # ---- MUTATIONS -------------------------------------------------------

    def create_contract(
        self,
        *,
        project_id: uuid.UUID,
        partner_id: uuid.UUID,
        budget_id: uuid.UUID,
        template_id: uuid.UUID,
        actor_id: str,
        number: Optional[str] = None,
        title: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """
        Cross-entity preconditions are all checked before any row is written:
        the budget exists, belongs to this project and partner, and is
        APPROVED or LOCKED; the template exists and is active.
        """
        req_hash = resolve_request_hash(
            request_hash,
            {
                "action": ACTION_CREATE,
                "projectId": str(project_id),
                "partnerId": str(partner_id),
                "budgetId": str(budget_id),
                "templateId": str(template_id),
                "number": number,
                "title": title,
            },
        )

        with self.database.transaction() as db:
            claim = self.ledger.begin(
                db,
                key=idempotency_key,
                action_key=ACTION_CREATE,
                actor_id=actor_id,
                request_hash=req_hash,
            )
            if claim.is_replay:
                return claim.replay

            budget = self.budgets.find_by_id(db, budget_id)
            if budget is None:
                raise NotFound("Budget not found.", details={"budgetId": str(budget_id)})
            if budget.partner_id != partner_id:
                raise PreconditionFailed(
                    "Budget does not belong to this partner.",
                    details={"budgetId": str(budget_id)},
                )
            if budget.status not in CONTRACTABLE_BUDGET_STATUSES:
                raise PreconditionFailed(
                    "Budget must be APPROVED or LOCKED before a contract can reference it.",
                    details={"budgetId": str(budget_id), "status": budget.status},
                )

            template = self.templates.find_by_id(db, template_id)
            if template is None:
                raise NotFound("Contract template not found.", details={"templateId": str(template_id)})
            if not template.is_active:
                raise PreconditionFailed(
                    "Contract template is not active.",
                    details={"templateId": str(template_id)},
                )

            contract_number = number or generate_contract_number()
            if self.contracts.find_by_number(db, contract_number) is not None:
                raise PreconditionFailed(
                    "Contract number already in use.",
                    details={"number": contract_number},
                )

            contract = self.contracts.create(
                db,
                project_id=project_id,
                partner_id=partner_id,
                budget_id=budget_id,
                template_id=template_id,
                number=contract_number,
                title=title or DEFAULT_CONTRACT_TITLE,
                created_by=actor_id,
            )
            snapshot = contract_snapshot(contract)

            self.audit.record(
                db,
                actor_id=actor_id,
                action=AuditAction.CONTRACT_SSOT_CREATED,
                entity_type=EntityType.CONTRACT.value,
                entity_id=str(contract.id),
                after=snapshot,
                payload={"budgetId": str(budget_id), "templateId": str(template_id)},
                context=context,
            )

            response = {"contract": snapshot}
            self.ledger.finish(db, claim, response)

        self.log.info(
            "contract_created",
            extra={"contract_id": snapshot["id"], "number": snapshot["number"], "actor_id": actor_id},
        )
        return response

    def generate(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        rendered_docx_key: Optional[str],
        merge_preview: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        def changes(db: Session, contract: Contract, target: ContractState) -> ContractUpdate:
            if not rendered_docx_key:
                raise PreconditionFailed(
                    "A rendered document key is required to generate a contract.",
                    details={"contractId": str(contract.id)},
                )
            metadata = None
            if merge_preview:
                metadata = {**(contract.metadata_json or {}), "mergePreview": merge_preview}
            return ContractUpdate(generated_docx_key=rendered_docx_key, metadata_json=metadata)

        return self._transition(
            ContractOperation.GENERATE,
            contract_id,
            actor_id=actor_id,
            args={"renderedDocxKey": rendered_docx_key, "mergePreview": merge_preview},
            build_changes=changes,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    def submit_for_approval(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        approval_provider: Optional[str] = None,
        approval_ref: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        return self._transition(
            ContractOperation.SUBMIT_FOR_APPROVAL,
            contract_id,
            actor_id=actor_id,
            args={"approvalProvider": approval_provider, "approvalRef": approval_ref},
            build_changes=lambda db, c, t: ContractUpdate(
                approval_provider=approval_provider, approval_ref=approval_ref
            ),
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    def mark_approved(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        approved_docx_key: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """Without an explicit key the generated document is the approved one."""
        return self._transition(
            ContractOperation.MARK_APPROVED,
            contract_id,
            actor_id=actor_id,
            args={"approvedDocxKey": approved_docx_key},
            build_changes=lambda db, c, t: ContractUpdate(
                approved_docx_key=approved_docx_key or c.generated_docx_key
            ),
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    def send_for_sign(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        envelope_id: Optional[str] = None,
        substatus: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        return self._transition(
            ContractOperation.SEND_FOR_SIGN,
            contract_id,
            actor_id=actor_id,
            args={"envelopeId": envelope_id, "substatus": substatus},
            build_changes=lambda db, c, t: ContractUpdate(
                signing_envelope_id=envelope_id,
                substatus_json=substatus if substatus is not None else {"signingProgress": "sent"},
            ),
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    def mark_signed(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        signed_pdf_key: Optional[str] = None,
        substatus: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        return self._transition(
            ContractOperation.MARK_SIGNED,
            contract_id,
            actor_id=actor_id,
            args={"signedPdfKey": signed_pdf_key, "substatus": substatus},
            build_changes=lambda db, c, t: ContractUpdate(
                signed_pdf_key=signed_pdf_key,
                substatus_json=substatus if substatus is not None else {"signingProgress": "completed"},
            ),
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    def activate(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        """
        SIGNED -> ACTIVE, and the referenced budget goes to LOCKED in the same
        commit. A budget that is already LOCKED is left as is.
        """

        def lock_budget(db: Session, contract: Contract) -> Dict[str, Any]:
            budget = self.budget_service.load_for_update(db, contract.budget_id)
            if budget.status != BudgetStatus.LOCKED.value:
                self.budget_service.change_status(
                    db,
                    budget,
                    BudgetStatus.LOCKED,
                    actor_id=actor_id,
                    context=context,
                    cause={"contractId": str(contract.id), "operation": ContractOperation.ACTIVATE.value},
                )
            return {"budget": budget_snapshot(budget)}

        return self._transition(
            ContractOperation.ACTIVATE,
            contract_id,
            actor_id=actor_id,
            args={},
            build_changes=lambda db, c, t: ContractUpdate(),
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
            after_update=lock_budget,
        )

    def cancel(
        self,
        contract_id: uuid.UUID,
        *,
        actor_id: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_hash: Optional[str] = None,
        context: Optional[AuditContext] = None,
    ) -> Dict[str, Any]:
        def changes(db: Session, contract: Contract, target: ContractState) -> ContractUpdate:
            return ContractUpdate(
                substatus_json={
                    **(contract.substatus_json or {}),
                    "cancelledAt": utcnow().isoformat(),
                    "reason": reason,
                }
            )

        return self._transition(
            ContractOperation.CANCEL,
            contract_id,
            actor_id=actor_id,
            args={"reason": reason},
            build_changes=changes,
            idempotency_key=idempotency_key,
            request_hash=request_hash,
            context=context,
        )

    # ---- READS -----------------------------------------------------------

    def get_contract_with_budget(self, contract_id: uuid.UUID) -> Dict[str, Any]:
        with self.database.reader() as db:
            contract = self.contracts.find_by_id(db, contract_id)
            if contract is None:
                raise NotFound("Contract not found.", details={"contractId": str(contract_id)})

            budget = self.budgets.find_by_id(db, contract.budget_id)
            return {
                "contract": contract_snapshot(contract),
                "budget": budget_snapshot(budget) if budget else None,
                "lines": lines_snapshot(self.lines.find_by_budget(db, contract.budget_id)),
            }

    def list_contracts_by_project(self, project_id: uuid.UUID) -> List[Dict[str, Any]]:
        with self.database.reader() as db:
            return [contract_snapshot(c) for c in self.contracts.find_by_project(db, project_id)]

    def list_contracts_by_partner(self, partner_id: uuid.UUID) -> List[Dict[str, Any]]:
        with self.database.reader() as db:
            return [contract_snapshot(c) for c in self.contracts.find_by_partner(db, partner_id)]

    def list_contracts_by_state(self, state: Union[ContractState, str]) -> List[Dict[str, Any]]:
        try:
            wanted = ContractState(state)
        except ValueError:
            raise PreconditionFailed(f"Unknown contract state: {state}", details={"state": str(state)})
        with self.database.reader() as db:
            return [contract_snapshot(c) for c in self.contracts.find_by_state(db, wanted)]
