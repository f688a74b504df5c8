from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.enums import ContractState
from app.schemas.budgets import BudgetLineOut, BudgetOut
from app.schemas.common import IdempotentRequest


class ContractCreateRequest(IdempotentRequest):
    projectId: uuid.UUID
    partnerId: uuid.UUID
    budgetId: uuid.UUID
    templateId: uuid.UUID
    number: Optional[str] = Field(None, min_length=1, max_length=64)
    title: Optional[str] = Field(None, min_length=1, max_length=255)


class GenerateRequest(IdempotentRequest):
    renderedDocxKey: Optional[str] = Field(None, max_length=512)
    mergePreview: Optional[Dict[str, Any]] = None


class SubmitForApprovalRequest(IdempotentRequest):
    approvalProvider: Optional[str] = Field(None, max_length=64)
    approvalRef: Optional[str] = Field(None, max_length=255)


class MarkApprovedRequest(IdempotentRequest):
    approvedDocxKey: Optional[str] = Field(None, max_length=512)


class SendForSignRequest(IdempotentRequest):
    envelopeId: Optional[str] = Field(None, max_length=255)
    substatus: Optional[Dict[str, Any]] = None


class MarkSignedRequest(IdempotentRequest):
    signedPdfKey: Optional[str] = Field(None, max_length=512)
    substatus: Optional[Dict[str, Any]] = None


class ActivateRequest(IdempotentRequest):
    pass


class CancelRequest(IdempotentRequest):
    reason: Optional[str] = None


# ---- responses --------------------------------------------------------------

class ContractOut(BaseModel):
    id: str
    projectId: str
    partnerId: str
    budgetId: str
    templateId: str
    number: str
    title: str
    state: ContractState
    generatedDocxKey: Optional[str] = None
    approvedDocxKey: Optional[str] = None
    signedPdfKey: Optional[str] = None
    approvalProvider: Optional[str] = None
    approvalRef: Optional[str] = None
    signingEnvelopeId: Optional[str] = None
    substatus: Dict[str, Any]
    metadata: Dict[str, Any]
    createdBy: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class ContractResponse(BaseModel):
    contract: ContractOut
    budget: Optional[BudgetOut] = None


class ContractWithBudgetResponse(BaseModel):
    contract: ContractOut
    budget: Optional[BudgetOut] = None
    lines: List[BudgetLineOut]
