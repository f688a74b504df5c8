import uuid
from decimal import Decimal

import pytest

from app.core.errors import (
    IdempotencyKeyConflict,
    InvalidTransition,
    Locked,
    NotFound,
    PreconditionFailed,
)
from app.models.enums import BudgetStatus, EntityType
from app.repositories.budget_line_repository import BudgetLineUpdate
from app.services.audit_service import AuditAction, AuditContext
from app.services.budget_ssot_service import BudgetSSOTService
from app.tests.factories import ACTOR, OTHER_ACTOR, FailingAuditRecorder, audit_rows, make_line


def _audit_rows(database, budget_id):
    return audit_rows(database, EntityType.BUDGET.value, budget_id)


def _lock(budget_service, budget_id):
    budget_service.transition_status(budget_id, BudgetStatus.LOCKED, actor_id=ACTOR)


# ---- create / update --------------------------------------------------------

def test_create_budget_starts_draft_with_zero_ceiling(budget_service, database):
    b = budget_service.create_budget(
        project_id=uuid.uuid4(), partner_id=uuid.uuid4(), currency="eur", actor_id=ACTOR
    )

    assert b["status"] == "DRAFT"
    assert b["ceilingTotal"] == "0.00"
    assert b["currency"] == "EUR"

    rows = _audit_rows(database, b["id"])
    assert [r.action for r in rows] == [AuditAction.BUDGET_SSOT_CREATED]
    assert rows[0].before_state is None
    assert rows[0].after_state["id"] == b["id"]


def test_create_budget_rejects_unknown_template(budget_service):
    with pytest.raises(PreconditionFailed):
        budget_service.create_budget(
            project_id=uuid.uuid4(),
            partner_id=uuid.uuid4(),
            currency="EUR",
            actor_id=ACTOR,
            template_id=uuid.uuid4(),
        )


def test_update_budget_records_before_and_after(budget_service, make_budget, database):
    b = make_budget()
    bid = uuid.UUID(b["id"])

    after = budget_service.update_budget(bid, actor_id=ACTOR, rules_json={"overheadCapPct": 7})

    assert after["rules"] == {"overheadCapPct": 7}
    row = _audit_rows(database, bid)[-1]
    assert row.action == AuditAction.BUDGET_SSOT_UPDATED
    assert row.before_state["rules"] == {}
    assert row.after_state["rules"] == {"overheadCapPct": 7}


def test_update_locked_budget_is_rejected(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    _lock(budget_service, bid)

    with pytest.raises(Locked):
        budget_service.update_budget(bid, actor_id=ACTOR, currency="USD")


# ---- lines / ceiling --------------------------------------------------------

def test_ceiling_is_sum_of_full_line_set(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])

    first = budget_service.add_budget_lines(
        bid, [make_line(qty="2", unit_cost="1500.00")], actor_id=ACTOR
    )
    assert first["budget"]["ceilingTotal"] == "3000.00"

    second = budget_service.add_budget_lines(
        bid,
        [
            make_line("Laptop", qty="1", unit_cost="999.99", unit="item"),
            make_line("Train tickets", qty="3", unit_cost="45.50", unit="trip"),
        ],
        actor_id=ACTOR,
    )

    assert second["budget"]["ceilingTotal"] == "4136.49"
    assert len(second["lines"]) == 3

    persisted = budget_service.get_budget_with_lines(bid)
    assert persisted["budget"]["ceilingTotal"] == "4136.49"
    total = sum(Decimal(l["qty"]) * Decimal(l["unitCost"]) for l in persisted["lines"])
    assert Decimal(persisted["budget"]["ceilingTotal"]) == total


def test_ceiling_follows_line_additions(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])

    out = budget_service.add_budget_lines(
        bid,
        [make_line("Workshop", qty="2", unit_cost="100"), make_line("Printing", qty="1", unit_cost="50")],
        actor_id=ACTOR,
    )
    assert out["budget"]["ceilingTotal"] == "250.00"

    out = budget_service.add_budget_lines(bid, [make_line("Postage", qty="3", unit_cost="10")], actor_id=ACTOR)
    assert out["budget"]["ceilingTotal"] == "280.00"


def test_lines_inherit_budget_currency(budget_service, make_budget):
    bid = uuid.UUID(make_budget(currency="GBP")["id"])
    out = budget_service.add_budget_lines(bid, [make_line()], actor_id=ACTOR)
    assert out["lines"][0]["currency"] == "GBP"


def test_add_empty_line_list_is_rejected(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    with pytest.raises(PreconditionFailed):
        budget_service.add_budget_lines(bid, [], actor_id=ACTOR)


def test_add_lines_to_missing_budget(budget_service):
    with pytest.raises(NotFound):
        budget_service.add_budget_lines(uuid.uuid4(), [make_line()], actor_id=ACTOR)


def test_locked_budget_lines_are_immutable(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    added = budget_service.add_budget_lines(bid, [make_line()], actor_id=ACTOR)
    line_id = uuid.UUID(added["lines"][0]["id"])
    _lock(budget_service, bid)

    with pytest.raises(Locked):
        budget_service.add_budget_lines(bid, [make_line()], actor_id=ACTOR)
    with pytest.raises(Locked):
        budget_service.update_budget_lines([(line_id, BudgetLineUpdate(qty=Decimal("9")))], actor_id=ACTOR)
    with pytest.raises(Locked):
        budget_service.delete_budget_lines([line_id], actor_id=ACTOR)

    persisted = budget_service.get_budget_with_lines(bid)
    assert len(persisted["lines"]) == 1
    assert persisted["lines"][0]["qty"] == "2.0000"
    assert persisted["budget"]["ceilingTotal"] == "3000.00"


def test_update_lines_recomputes_ceiling(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])
    added = budget_service.add_budget_lines(bid, [make_line(), make_line("Driver")], actor_id=ACTOR)
    line_id = uuid.UUID(added["lines"][1]["id"])

    out = budget_service.update_budget_lines(
        [(line_id, BudgetLineUpdate(unit_cost=Decimal("1000.00")))], actor_id=ACTOR
    )

    assert out["budgets"][0]["ceilingTotal"] == "5000.00"
    row = _audit_rows(database, bid)[-1]
    assert row.action == AuditAction.BUDGET_SSOT_LINES_UPDATED
    assert row.before_state["ceilingTotal"] == "6000.00"
    assert row.after_state["ceilingTotal"] == "5000.00"


def test_update_unknown_line(budget_service):
    with pytest.raises(NotFound):
        budget_service.update_budget_lines([(uuid.uuid4(), BudgetLineUpdate(notes="x"))], actor_id=ACTOR)


def test_delete_lines_recomputes_ceiling(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    added = budget_service.add_budget_lines(
        bid, [make_line(), make_line("Driver", qty="1", unit_cost="500.00")], actor_id=ACTOR
    )

    officer = next(l for l in added["lines"] if l["description"] == "Project officer")

    out = budget_service.delete_budget_lines([uuid.UUID(officer["id"])], actor_id=ACTOR)

    assert out["deleted"] == 1
    assert out["budgets"][0]["ceilingTotal"] == "500.00"
    assert len(budget_service.get_budget_with_lines(bid)["lines"]) == 1


def test_template_line_must_belong_to_budget_template(budget_service, make_budget, budget_template):
    bid = uuid.UUID(make_budget()["id"])  # no template
    with pytest.raises(PreconditionFailed):
        budget_service.add_budget_lines(
            bid, [make_line(template_line_id=budget_template["travel_line_id"])], actor_id=ACTOR
        )


def test_template_line_max_lines_is_enforced(budget_service, make_budget, budget_template):
    bid = uuid.UUID(make_budget(template_id=budget_template["id"])["id"])
    staff = budget_template["staff_line_id"]

    budget_service.add_budget_lines(bid, [make_line(template_line_id=staff)], actor_id=ACTOR)
    budget_service.add_budget_lines(bid, [make_line(template_line_id=staff)], actor_id=ACTOR)

    with pytest.raises(PreconditionFailed):
        budget_service.add_budget_lines(bid, [make_line(template_line_id=staff)], actor_id=ACTOR)


# ---- status transitions -----------------------------------------------------

@pytest.mark.parametrize(
    "path",
    [
        [BudgetStatus.SUBMITTED, BudgetStatus.APPROVED, BudgetStatus.LOCKED],
        [BudgetStatus.SUBMITTED, BudgetStatus.REJECTED, BudgetStatus.DRAFT],
        [BudgetStatus.SUBMITTED, BudgetStatus.DRAFT, BudgetStatus.LOCKED],
    ],
)
def test_allowed_transition_paths(budget_service, make_budget, path):
    bid = uuid.UUID(make_budget()["id"])
    for status in path:
        out = budget_service.transition_status(bid, status, actor_id=ACTOR)
        assert out["budget"]["status"] == status.value


def test_invalid_transition_leaves_state_untouched(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])

    with pytest.raises(InvalidTransition):
        budget_service.transition_status(bid, BudgetStatus.APPROVED, actor_id=ACTOR)

    assert budget_service.get_budget_with_lines(bid)["budget"]["status"] == "DRAFT"
    assert [r.action for r in _audit_rows(database, bid)] == [AuditAction.BUDGET_SSOT_CREATED]


def test_locked_is_terminal(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    _lock(budget_service, bid)
    for status in BudgetStatus:
        with pytest.raises(InvalidTransition):
            budget_service.transition_status(bid, status, actor_id=ACTOR)


def test_unknown_status_is_invalid_transition(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    with pytest.raises(InvalidTransition):
        budget_service.transition_status(bid, "ARCHIVED", actor_id=ACTOR)


def test_transition_missing_budget(budget_service):
    with pytest.raises(NotFound):
        budget_service.transition_status(uuid.uuid4(), BudgetStatus.SUBMITTED, actor_id=ACTOR)


def test_transition_audit_carries_from_to_and_context(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])
    ctx = AuditContext(ip_address="10.0.0.7", user_agent="pytest", request_id="req-42")

    budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=OTHER_ACTOR, context=ctx)

    row = _audit_rows(database, bid)[-1]
    assert row.action == AuditAction.BUDGET_SSOT_STATUS_CHANGED
    assert row.actor_id == OTHER_ACTOR
    assert row.payload_json == {"from": "DRAFT", "to": "SUBMITTED"}
    assert row.before_state["status"] == "DRAFT"
    assert row.after_state["status"] == "SUBMITTED"
    assert (row.ip_address, row.user_agent, row.request_id) == ("10.0.0.7", "pytest", "req-42")


def test_audit_history_reconstructs_status_sequence(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])
    for status in (BudgetStatus.SUBMITTED, BudgetStatus.REJECTED, BudgetStatus.DRAFT):
        budget_service.transition_status(bid, status, actor_id=ACTOR)

    transitions = [
        (r.before_state["status"], r.after_state["status"])
        for r in _audit_rows(database, bid)
        if r.action == AuditAction.BUDGET_SSOT_STATUS_CHANGED
    ]
    assert transitions == [("DRAFT", "SUBMITTED"), ("SUBMITTED", "REJECTED"), ("REJECTED", "DRAFT")]


# ---- idempotency ------------------------------------------------------------

def test_idempotent_replay_applies_once(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])

    first = budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-1")
    second = budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-1")

    assert first == second
    status_rows = [r for r in _audit_rows(database, bid) if r.action == AuditAction.BUDGET_SSOT_STATUS_CHANGED]
    assert len(status_rows) == 1


def test_replay_returns_cached_response_after_later_changes(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    first = budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-2")
    budget_service.transition_status(bid, BudgetStatus.APPROVED, actor_id=ACTOR)

    replay = budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-2")

    assert replay == first
    assert budget_service.get_budget_with_lines(bid)["budget"]["status"] == "APPROVED"


def test_key_reuse_with_different_hash_conflicts(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    budget_service.transition_status(
        bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-3", request_hash="h-1"
    )

    with pytest.raises(IdempotencyKeyConflict):
        budget_service.transition_status(
            bid, BudgetStatus.DRAFT, actor_id=ACTOR, idempotency_key="K-3", request_hash="h-2"
        )

    assert budget_service.get_budget_with_lines(bid)["budget"]["status"] == "SUBMITTED"


def test_key_reuse_with_different_arguments_conflicts_without_explicit_hash(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])
    budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-4")

    with pytest.raises(IdempotencyKeyConflict):
        budget_service.transition_status(bid, BudgetStatus.DRAFT, actor_id=ACTOR, idempotency_key="K-4")


def test_failed_transition_does_not_consume_key(budget_service, make_budget):
    bid = uuid.UUID(make_budget()["id"])

    with pytest.raises(InvalidTransition):
        budget_service.transition_status(bid, BudgetStatus.APPROVED, actor_id=ACTOR, idempotency_key="K-5")

    # the reservation rolled back with the failed transaction, so K-5 is still free
    budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-6")
    out = budget_service.transition_status(bid, BudgetStatus.APPROVED, actor_id=ACTOR, idempotency_key="K-5")
    assert out["budget"]["status"] == "APPROVED"


def test_transition_rolls_back_when_audit_fails(budget_service, make_budget, database):
    bid = uuid.UUID(make_budget()["id"])
    flaky = BudgetSSOTService(database, audit=FailingAuditRecorder(AuditAction.BUDGET_SSOT_STATUS_CHANGED))

    with pytest.raises(RuntimeError):
        flaky.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-7")

    assert budget_service.get_budget_with_lines(bid)["budget"]["status"] == "DRAFT"
    assert [r.action for r in _audit_rows(database, bid)] == [AuditAction.BUDGET_SSOT_CREATED]

    out = budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR, idempotency_key="K-7")
    assert out["budget"]["status"] == "SUBMITTED"


# ---- reads ------------------------------------------------------------------

def test_list_budgets_by_project_and_partner(budget_service, make_budget):
    project, partner = uuid.uuid4(), uuid.uuid4()
    make_budget(project_id=project, partner_id=partner)
    make_budget(project_id=project)
    make_budget(partner_id=partner)

    assert len(budget_service.list_budgets_by_project(project)) == 2
    assert len(budget_service.list_budgets_by_partner(partner)) == 2
    assert budget_service.list_budgets_by_project(uuid.uuid4()) == []


def test_get_missing_budget(budget_service):
    with pytest.raises(NotFound):
        budget_service.get_budget_with_lines(uuid.uuid4())
