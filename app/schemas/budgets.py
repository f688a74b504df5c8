from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.enums import BudgetLineStatus, BudgetStatus
from app.schemas.common import IdempotentRequest


class BudgetCreateRequest(BaseModel):
    projectId: uuid.UUID
    partnerId: uuid.UUID
    currency: str = Field(..., min_length=3, max_length=3)
    templateId: Optional[uuid.UUID] = None
    rules: Optional[Dict[str, Any]] = None


class BudgetUpdateRequest(BaseModel):
    """Status and ceiling are not writable here."""
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    templateId: Optional[uuid.UUID] = None
    rules: Optional[Dict[str, Any]] = None


class BudgetLineIn(BaseModel):
    description: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1, max_length=32)
    qty: Decimal = Field(..., ge=0)
    unitCost: Decimal = Field(..., ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    templateLineId: Optional[uuid.UUID] = None
    categoryId: Optional[uuid.UUID] = None
    periodFrom: Optional[date] = None
    periodTo: Optional[date] = None
    notes: Optional[str] = None
    status: BudgetLineStatus = BudgetLineStatus.DRAFT


class BudgetLinesAddRequest(BaseModel):
    lines: List[BudgetLineIn]


class BudgetLinePatch(BaseModel):
    id: uuid.UUID
    description: Optional[str] = None
    unit: Optional[str] = Field(None, max_length=32)
    qty: Optional[Decimal] = Field(None, ge=0)
    unitCost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    categoryId: Optional[uuid.UUID] = None
    periodFrom: Optional[date] = None
    periodTo: Optional[date] = None
    notes: Optional[str] = None
    status: Optional[BudgetLineStatus] = None


class BudgetLinesUpdateRequest(BaseModel):
    lines: List[BudgetLinePatch]


class BudgetLinesDeleteRequest(BaseModel):
    lineIds: List[uuid.UUID]


class BudgetTransitionRequest(IdempotentRequest):
    # unknown values are rejected by the transition table as InvalidTransition
    nextStatus: str = Field(..., min_length=1, max_length=32)


# ---- responses --------------------------------------------------------------

class BudgetOut(BaseModel):
    id: str
    projectId: str
    partnerId: str
    templateId: Optional[str] = None
    currency: str
    ceilingTotal: str
    status: BudgetStatus
    rules: Dict[str, Any]
    createdBy: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class BudgetLineOut(BaseModel):
    id: str
    budgetId: str
    templateLineId: Optional[str] = None
    categoryId: Optional[str] = None
    description: str
    unit: str
    qty: str
    unitCost: str
    currency: str
    periodFrom: Optional[str] = None
    periodTo: Optional[str] = None
    notes: Optional[str] = None
    status: BudgetLineStatus
    createdBy: str
    createdAt: Optional[str] = None


class BudgetResponse(BaseModel):
    budget: BudgetOut


class BudgetWithLinesResponse(BaseModel):
    budget: BudgetOut
    lines: List[BudgetLineOut]


class BudgetLinesUpdatedResponse(BaseModel):
    lines: List[BudgetLineOut]
    budgets: List[BudgetOut]


class BudgetLinesDeletedResponse(BaseModel):
    deleted: int
    budgets: List[BudgetOut]
