# Importing this package registers every table on Base.metadata.
from app.models.audit_log import AuditLogEntry  # noqa: F401
from app.models.budget import Budget, BudgetLine  # noqa: F401
from app.models.budget_template import BudgetTemplate, BudgetTemplateLine  # noqa: F401
from app.models.contract import Contract, ContractTemplate  # noqa: F401
from app.models.idempotency_key import IdempotencyRecord  # noqa: F401
