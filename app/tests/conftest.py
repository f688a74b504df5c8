import os

# settings are read at import time by app.main / app.db.session
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

import uuid
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# FORCE model registration
import app.models  # noqa

from app.db.base import Base
from app.db.unit_of_work import Database
from app.models.enums import BudgetStatus
from app.repositories.budget_template_repository import BudgetTemplateRepository
from app.repositories.contract_repository import ContractTemplateRepository
from app.services.budget_ssot_service import BudgetSSOTService
from app.services.contract_ssot_service import ContractSSOTService
from app.tests.factories import ACTOR, make_line


@pytest.fixture(scope="function")
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture(scope="function")
def database(engine):
    return Database(engine, timeout_seconds=30.0)


@pytest.fixture
def budget_service(database):
    return BudgetSSOTService(database)


@pytest.fixture
def contract_service(database, budget_service):
    return ContractSSOTService(database, budget_service=budget_service)


@pytest.fixture
def budget_template(database):
    """Published template with a capped 'Staff' slot (max 2 lines) and an open 'Travel' slot."""
    templates = BudgetTemplateRepository()
    with database.transaction() as db:
        t = templates.create(db, name="Standard partner budget", created_by="seed")
        staff = templates.create_line(db, template_id=t.id, subcategory="Staff", max_lines=2, sort_order=1)
        travel = templates.create_line(db, template_id=t.id, subcategory="Travel", sort_order=2)
        return {"id": t.id, "staff_line_id": staff.id, "travel_line_id": travel.id}


@pytest.fixture
def contract_template(database):
    templates = ContractTemplateRepository()
    with database.transaction() as db:
        t = templates.create(db, name="Grant agreement v1", content="{{partner}} agrees...", created_by="seed")
        return t.id


@pytest.fixture
def make_budget(budget_service):
    def _make(project_id=None, partner_id=None, template_id=None, currency="EUR"):
        return budget_service.create_budget(
            project_id=project_id or uuid.uuid4(),
            partner_id=partner_id or uuid.uuid4(),
            currency=currency,
            actor_id=ACTOR,
            template_id=template_id,
        )
    return _make


@pytest.fixture
def approved_budget(budget_service, make_budget):
    """DRAFT -> SUBMITTED -> APPROVED, with one line priced 3000.00."""
    b = make_budget()
    bid = uuid.UUID(b["id"])
    budget_service.add_budget_lines(bid, [make_line()], actor_id=ACTOR)
    budget_service.transition_status(bid, BudgetStatus.SUBMITTED, actor_id=ACTOR)
    return budget_service.transition_status(bid, BudgetStatus.APPROVED, actor_id=ACTOR)["budget"]
