#app/models/enums.py
from __future__ import annotations
from enum import Enum


class BudgetStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    LOCKED = "LOCKED"


class BudgetLineStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"


class ContractState(str, Enum):
    DRAFT = "DRAFT"
    GENERATED = "GENERATED"
    SUBMITTED_FOR_APPROVAL = "SUBMITTED_FOR_APPROVAL"
    APPROVED = "APPROVED"
    SENT_FOR_SIGN = "SENT_FOR_SIGN"
    SIGNED = "SIGNED"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class TemplateStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class EntityType(str, Enum):
    # audit_logs.entity_type
    BUDGET = "budget_ssot"
    CONTRACT = "contract_ssot"
