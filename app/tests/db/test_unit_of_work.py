import time
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.errors import NotFound, Unavailable
from app.db.unit_of_work import Database
from app.models.budget import Budget
from app.repositories.budget_repository import BudgetRepository


def _create(db):
    return BudgetRepository().create(
        db, project_id=uuid.uuid4(), partner_id=uuid.uuid4(), currency="EUR", created_by="u1"
    )


def _count(database):
    with database.reader() as db:
        return db.execute(select(func.count()).select_from(Budget)).scalar_one()


def test_transaction_commits_on_success(database):
    with database.transaction() as db:
        _create(db)
    assert _count(database) == 1


def test_transaction_rolls_back_on_lifecycle_error(database):
    with pytest.raises(NotFound):
        with database.transaction() as db:
            _create(db)
            raise NotFound("gone")
    assert _count(database) == 0


def test_run_returns_callback_result(database):
    budget_id = database.run(lambda db: _create(db).id)
    with database.reader() as db:
        assert BudgetRepository().find_by_id(db, budget_id) is not None


def test_timeout_rolls_back_and_is_unavailable(engine):
    database = Database(engine, timeout_seconds=0.001)

    with pytest.raises(Unavailable) as exc:
        with database.transaction() as db:
            _create(db)
            time.sleep(0.02)

    assert exc.value.retryable is True
    assert _count(Database(engine)) == 0


def test_operational_error_is_unavailable(database):
    def boom(db):
        _create(db)
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    with pytest.raises(Unavailable):
        database.run(boom)
    assert _count(database) == 0


def test_reader_never_commits(database):
    with database.reader() as db:
        _create(db)
    assert _count(database) == 0
