import uuid
from decimal import Decimal

from app.models.enums import BudgetStatus, ContractState
from app.repositories.budget_line_repository import BudgetLineRepository
from app.repositories.budget_repository import BudgetRepository, BudgetUpdate
from app.repositories.budget_template_repository import BudgetTemplateRepository
from app.repositories.contract_repository import (
    ContractRepository,
    ContractTemplateRepository,
    ContractUpdate,
)
from app.tests.factories import ACTOR, make_line


def _budget(db, project_id, partner_id, status=None):
    repo = BudgetRepository()
    b = repo.create(db, project_id=project_id, partner_id=partner_id, currency="EUR", created_by=ACTOR)
    if status is not None:
        repo.update(db, b.id, BudgetUpdate(status=status))
    return b


def test_budget_queries(database):
    budgets = BudgetRepository()
    project, partner = uuid.uuid4(), uuid.uuid4()

    with database.transaction() as db:
        mine = _budget(db, project, partner, status=BudgetStatus.SUBMITTED)
        _budget(db, project, uuid.uuid4())
        _budget(db, uuid.uuid4(), partner)

    with database.reader() as db:
        assert [b.id for b in budgets.find_by_project_and_partner(db, project, partner)] == [mine.id]
        assert [b.id for b in budgets.find_by_status(db, BudgetStatus.SUBMITTED)] == [mine.id]
        assert len(budgets.find_by_status(db, BudgetStatus.DRAFT)) == 2


def test_update_of_missing_budget_returns_none(database):
    with database.transaction() as db:
        assert BudgetRepository().update(db, uuid.uuid4(), BudgetUpdate(currency="USD")) is None


def test_sum_line_costs_is_exact_decimal(database):
    lines = BudgetLineRepository()
    with database.transaction() as db:
        b = _budget(db, uuid.uuid4(), uuid.uuid4())
        for qty, cost in (("0.5", "0.01"), ("2", "50.00"), ("1", "100.00")):
            lines.create(db, budget_id=b.id, line=make_line(qty=qty, unit_cost=cost), currency="EUR", created_by=ACTOR)
        total = lines.sum_line_costs(db, b.id)

    # 0.005 + 100.00 + 100.00 = 200.005, rounded half-up to cents
    assert total == Decimal("200.01")


def test_delete_budget_and_its_lines(database):
    budgets, lines = BudgetRepository(), BudgetLineRepository()
    with database.transaction() as db:
        b = _budget(db, uuid.uuid4(), uuid.uuid4())
        other = _budget(db, uuid.uuid4(), uuid.uuid4())
        for target in (b, other):
            lines.create(db, budget_id=target.id, line=make_line(), currency="EUR", created_by=ACTOR)

    with database.transaction() as db:
        lines.delete_by_budget(db, other.id)
        budgets.delete(db, b.id)

    with database.reader() as db:
        assert budgets.find_by_id(db, b.id) is None
        assert lines.find_by_budget(db, b.id) == []
        assert lines.find_by_budget(db, other.id) == []
        assert budgets.find_by_id(db, other.id) is not None


def test_template_lines_are_ordered(database):
    templates = BudgetTemplateRepository()
    with database.transaction() as db:
        t = templates.create(db, name="T", created_by=ACTOR)
        templates.create_line(db, template_id=t.id, subcategory="Travel", sort_order=2)
        templates.create_line(db, template_id=t.id, subcategory="Staff", sort_order=1)

    with database.reader() as db:
        assert [l.subcategory for l in templates.find_lines(db, t.id)] == ["Staff", "Travel"]


def test_contract_queries(database):
    contracts, templates = ContractRepository(), ContractTemplateRepository()
    project, partner = uuid.uuid4(), uuid.uuid4()

    with database.transaction() as db:
        t = templates.create(db, name="GA", content="...", created_by=ACTOR)
        b = _budget(db, project, partner, status=BudgetStatus.APPROVED)
        c = contracts.create(
            db,
            project_id=project,
            partner_id=partner,
            budget_id=b.id,
            template_id=t.id,
            number="CN-2026-123456",
            title="Grant Agreement",
            created_by=ACTOR,
        )
        contracts.update(db, c.id, ContractUpdate(state=ContractState.GENERATED, metadata_json={"a": 1}))

    with database.reader() as db:
        assert contracts.find_by_number(db, "CN-2026-123456").id == c.id
        assert [x.id for x in contracts.find_by_project_and_partner(db, project, partner)] == [c.id]
        assert [x.id for x in contracts.find_by_budget(db, b.id)] == [c.id]
        reloaded = contracts.find_by_id(db, c.id)
        assert reloaded.state == ContractState.GENERATED.value
        assert reloaded.metadata_json == {"a": 1}


def test_contract_template_activation(database):
    templates = ContractTemplateRepository()
    with database.transaction() as db:
        keep = templates.create(db, name="GA", content="v2", version=2, created_by=ACTOR)
        retire = templates.create(db, name="GA", content="v1", version=1, created_by=ACTOR)
        templates.set_active(db, retire.id, False)

    with database.reader() as db:
        assert [t.id for t in templates.find_active(db)] == [keep.id]
