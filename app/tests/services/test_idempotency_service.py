import pytest

from app.core.errors import IdempotencyKeyConflict
from app.core.hashing import stable_hash
from app.services.idempotency_service import IdempotencyLedger, resolve_request_hash

ACTION = "BUDGET_SSOT_STATUS_TRANSITION"


def test_reserve_is_insert_or_ignore(database):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        first = ledger.reserve(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")
        second = ledger.reserve(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")

    assert first is not None
    assert first.is_completed is False
    assert second is None


def test_mark_completed_stores_response(database):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        ledger.reserve(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")
        ledger.mark_completed(db, "k", {"budget": {"status": "SUBMITTED"}})

    with database.reader() as db:
        row = ledger.find_by_key(db, "k")
        assert row.is_completed
        assert row.response_json == {"budget": {"status": "SUBMITTED"}}
        assert row.completed_at is not None


def test_mark_completed_requires_reservation(database):
    ledger = IdempotencyLedger()
    with pytest.raises(RuntimeError):
        with database.transaction() as db:
            ledger.mark_completed(db, "never-reserved", {})


def test_begin_without_key_never_touches_ledger(database):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        claim = ledger.begin(db, key=None, action_key=ACTION, actor_id="u1", request_hash="h")

    assert claim.is_replay is False
    assert claim.holds_reservation is False


def test_begin_reserves_then_replays(database):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        claim = ledger.begin(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")
        assert claim.holds_reservation
        ledger.finish(db, claim, {"ok": True})

    with database.transaction() as db:
        again = ledger.begin(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")

    assert again.is_replay
    assert again.replay == {"ok": True}
    assert again.holds_reservation is False


def test_begin_on_pending_reservation_proceeds_without_replay(database):
    """A concurrent duplicate that has not completed yet: validate normally."""
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        ledger.reserve(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")

    with database.transaction() as db:
        claim = ledger.begin(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")

    assert claim.is_replay is False
    assert claim.holds_reservation is False


@pytest.mark.parametrize(
    "action_key, actor_id, request_hash",
    [
        (ACTION, "u1", "other-hash"),
        ("CONTRACT_SSOT_GENERATED", "u1", "h"),
        (ACTION, "u2", "h"),
    ],
)
def test_begin_rejects_mismatched_reuse(database, action_key, actor_id, request_hash):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        claim = ledger.begin(db, key="k", action_key=ACTION, actor_id="u1", request_hash="h")
        ledger.finish(db, claim, {"ok": True})

    with pytest.raises(IdempotencyKeyConflict):
        with database.transaction() as db:
            ledger.begin(db, key="k", action_key=action_key, actor_id=actor_id, request_hash=request_hash)


def test_finish_is_noop_without_reservation(database):
    ledger = IdempotencyLedger()
    with database.transaction() as db:
        claim = ledger.begin(db, key=None, action_key=ACTION, actor_id="u1", request_hash="h")
        ledger.finish(db, claim, {"ok": True})

    with database.reader() as db:
        assert ledger.find_by_key(db, "k") is None


def test_resolve_request_hash():
    payload = {"action": ACTION, "budgetId": "b1", "nextStatus": "SUBMITTED"}
    assert resolve_request_hash("explicit", payload) == "explicit"
    assert resolve_request_hash(None, payload) == stable_hash(payload)
    # key order does not matter
    assert resolve_request_hash(None, dict(reversed(list(payload.items())))) == stable_hash(payload)
