# app/api/v1/contracts.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends

from app.core.auth_deps import Actor, get_current_actor
from app.core.deps import get_audit_context, get_contract_service
from app.core.deps_idempotency import optional_idempotency_key
from app.models.enums import ContractState
from app.schemas.common import IdempotentRequest
from app.schemas.contracts import (
    ActivateRequest,
    CancelRequest,
    ContractCreateRequest,
    ContractOut,
    ContractResponse,
    ContractWithBudgetResponse,
    GenerateRequest,
    MarkApprovedRequest,
    MarkSignedRequest,
    SendForSignRequest,
    SubmitForApprovalRequest,
)
from app.services.audit_service import AuditContext
from app.services.contract_ssot_service import ContractSSOTService

router = APIRouter(prefix="/contracts")


def _idem(body: IdempotentRequest, header_key: Optional[str]) -> dict:
    return {
        "idempotency_key": body.idempotencyKey or header_key,
        "request_hash": body.requestHash,
    }


@router.post("", response_model=ContractResponse, status_code=201)
def create_contract(
    body: ContractCreateRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.create_contract(
        project_id=body.projectId,
        partner_id=body.partnerId,
        budget_id=body.budgetId,
        template_id=body.templateId,
        actor_id=actor.actor_id,
        number=body.number,
        title=body.title,
        context=ctx,
        **_idem(body, header_key),
    )


# ─────────────────────────────────────────────────────────────
# Listings
# ─────────────────────────────────────────────────────────────

@router.get("/by-project/{projectId}", response_model=List[ContractOut])
def list_contracts_by_project(
    projectId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.list_contracts_by_project(projectId)


@router.get("/by-partner/{partnerId}", response_model=List[ContractOut])
def list_contracts_by_partner(
    partnerId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.list_contracts_by_partner(partnerId)


@router.get("/by-state/{state}", response_model=List[ContractOut])
def list_contracts_by_state(
    state: ContractState,
    actor: Actor = Depends(get_current_actor),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.list_contracts_by_state(state)


@router.get("/{contractId}", response_model=ContractWithBudgetResponse)
def get_contract(
    contractId: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.get_contract_with_budget(contractId)


# ─────────────────────────────────────────────────────────────
# Lifecycle actions
# ─────────────────────────────────────────────────────────────

@router.post("/{contractId}/generate", response_model=ContractResponse)
def generate_contract(
    contractId: uuid.UUID,
    body: GenerateRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.generate(
        contractId,
        actor_id=actor.actor_id,
        rendered_docx_key=body.renderedDocxKey,
        merge_preview=body.mergePreview,
        context=ctx,
        **_idem(body, header_key),
    )


@router.post("/{contractId}/submit", response_model=ContractResponse)
def submit_contract_for_approval(
    contractId: uuid.UUID,
    body: SubmitForApprovalRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.submit_for_approval(
        contractId,
        actor_id=actor.actor_id,
        approval_provider=body.approvalProvider,
        approval_ref=body.approvalRef,
        context=ctx,
        **_idem(body, header_key),
    )


@router.post("/{contractId}/approve", response_model=ContractResponse)
def approve_contract(
    contractId: uuid.UUID,
    body: MarkApprovedRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.mark_approved(
        contractId,
        actor_id=actor.actor_id,
        approved_docx_key=body.approvedDocxKey,
        context=ctx,
        **_idem(body, header_key),
    )


@router.post("/{contractId}/send-for-sign", response_model=ContractResponse)
def send_contract_for_sign(
    contractId: uuid.UUID,
    body: SendForSignRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.send_for_sign(
        contractId,
        actor_id=actor.actor_id,
        envelope_id=body.envelopeId,
        substatus=body.substatus,
        context=ctx,
        **_idem(body, header_key),
    )


@router.post("/{contractId}/sign", response_model=ContractResponse)
def sign_contract(
    contractId: uuid.UUID,
    body: MarkSignedRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.mark_signed(
        contractId,
        actor_id=actor.actor_id,
        signed_pdf_key=body.signedPdfKey,
        substatus=body.substatus,
        context=ctx,
        **_idem(body, header_key),
    )


@router.post("/{contractId}/activate", response_model=ContractResponse)
def activate_contract(
    contractId: uuid.UUID,
    body: ActivateRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.activate(contractId, actor_id=actor.actor_id, context=ctx, **_idem(body, header_key))


@router.post("/{contractId}/cancel", response_model=ContractResponse)
def cancel_contract(
    contractId: uuid.UUID,
    body: CancelRequest,
    header_key: Optional[str] = Depends(optional_idempotency_key),
    actor: Actor = Depends(get_current_actor),
    ctx: AuditContext = Depends(get_audit_context),
    svc: ContractSSOTService = Depends(get_contract_service),
):
    return svc.cancel(
        contractId,
        actor_id=actor.actor_id,
        reason=body.reason,
        context=ctx,
        **_idem(body, header_key),
    )
