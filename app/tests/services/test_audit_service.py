import uuid

import pytest
from sqlalchemy import func, select

from app.models.audit_log import AuditLogEntry
from app.repositories.audit_log_repository import AuditLogRepository
from app.services.audit_service import AuditAction, AuditContext, AuditTrailRecorder


def _count(database):
    with database.reader() as db:
        return db.execute(select(func.count()).select_from(AuditLogEntry)).scalar_one()


def test_record_is_written_in_callers_transaction(database):
    recorder = AuditTrailRecorder()
    entity_id = str(uuid.uuid4())

    with database.transaction() as db:
        recorder.record(
            db,
            actor_id="u1",
            action=AuditAction.BUDGET_SSOT_CREATED,
            entity_type="budget_ssot",
            entity_id=entity_id,
            after={"status": "DRAFT"},
            context=AuditContext(ip_address="127.0.0.1", request_id="r-1"),
        )

    with database.reader() as db:
        rows = AuditLogRepository().find_by_entity(db, "budget_ssot", entity_id)
        assert len(rows) == 1
        assert rows[0].after_state == {"status": "DRAFT"}
        assert rows[0].payload_json == {}
        assert rows[0].ip_address == "127.0.0.1"
        assert rows[0].request_id == "r-1"


def test_record_rolls_back_with_caller(database):
    recorder = AuditTrailRecorder()

    with pytest.raises(ValueError):
        with database.transaction() as db:
            recorder.record(
                db,
                actor_id="u1",
                action=AuditAction.BUDGET_SSOT_UPDATED,
                entity_type="budget_ssot",
                entity_id="b-1",
            )
            raise ValueError("later step failed")

    assert _count(database) == 0


def test_record_failure_propagates(database, caplog):
    recorder = AuditTrailRecorder()

    with pytest.raises(Exception):
        with database.transaction() as db:
            recorder.record(
                db,
                actor_id="u1",
                action=None,  # NOT NULL column
                entity_type="budget_ssot",
                entity_id="b-1",
            )

    assert "audit_write_failed" in caplog.text
    assert _count(database) == 0


def test_find_by_action(database):
    recorder = AuditTrailRecorder()
    with database.transaction() as db:
        for i in range(3):
            recorder.record(
                db,
                actor_id="u1",
                action=AuditAction.CONTRACT_SSOT_CANCELLED if i else AuditAction.CONTRACT_SSOT_CREATED,
                entity_type="contract_ssot",
                entity_id=f"c-{i}",
            )

    with database.reader() as db:
        rows = AuditLogRepository().find_by_action(db, AuditAction.CONTRACT_SSOT_CANCELLED)
        assert sorted(r.entity_id for r in rows) == ["c-1", "c-2"]
