from decimal import Decimal

from app.repositories.audit_log_repository import AuditLogRepository
from app.repositories.budget_line_repository import NewBudgetLine
from app.services.audit_service import AuditTrailRecorder

ACTOR = "user-finance-1"
OTHER_ACTOR = "user-finance-2"


def make_line(description="Project officer", qty="2", unit_cost="1500.00", **kwargs):
    return NewBudgetLine(
        description=description,
        unit=kwargs.pop("unit", "month"),
        qty=Decimal(qty),
        unit_cost=Decimal(unit_cost),
        **kwargs,
    )


def audit_rows(database, entity_type, entity_id):
    """Audit entries for one entity, oldest first, detached with their columns loaded."""
    with database.reader() as db:
        rows = AuditLogRepository().find_by_entity(db, entity_type, str(entity_id))
        # reader() rolls back on exit, which would expire anything still attached
        db.expunge_all()
    return rows


class FailingAuditRecorder(AuditTrailRecorder):
    """Audit double that refuses one action, to prove the surrounding change rolls back."""

    def __init__(self, fail_on: str):
        super().__init__()
        self.fail_on = fail_on

    def record(self, db, **kwargs):
        if kwargs["action"] == self.fail_on:
            raise RuntimeError(f"audit store rejected {self.fail_on}")
        return super().record(db, **kwargs)
