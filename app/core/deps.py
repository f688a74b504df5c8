# /app/core/deps.py
from fastapi import Request

from app.db.session import get_database
from app.services.audit_service import AuditContext
from app.services.budget_ssot_service import BudgetSSOTService
from app.services.contract_ssot_service import ContractSSOTService


def get_budget_service() -> BudgetSSOTService:
    return BudgetSSOTService(get_database())


def get_contract_service() -> ContractSSOTService:
    return ContractSSOTService(get_database())


def get_audit_context(request: Request) -> AuditContext:
    """
    Resolution order for the caller address:
    1. X-Forwarded-For (first hop)
    2. socket peer
    """
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else None
    if not ip and request.client:
        ip = request.client.host

    return AuditContext(
        ip_address=ip,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )
