from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from app.core.errors import IdempotencyKeyConflict
from app.core.hashing import stable_hash
from app.db.base import utcnow
from app.models.idempotency_key import IdempotencyRecord

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def resolve_request_hash(request_hash: Optional[str], payload: Dict[str, Any]) -> str:
    """Caller-supplied hash wins; otherwise hash the canonical request payload."""
    return request_hash or stable_hash(payload)


@dataclass(frozen=True)
class IdempotencyClaim:
    """
    Outcome of consulting the ledger before a lifecycle mutation.

    - replay is set: the action already completed, return it unchanged
    - holds_reservation: this caller inserted the key and must complete it
    - neither: no key supplied, or a concurrent duplicate holds the key
    """
    key: Optional[str]
    request_hash: Optional[str]
    replay: Optional[Dict[str, Any]] = None
    holds_reservation: bool = False

    @property
    def is_replay(self) -> bool:
        return self.replay is not None


class IdempotencyLedger:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)

    def find_by_key(self, db: Session, key: str) -> Optional[IdempotencyRecord]:
        return db.execute(
            select(IdempotencyRecord).where(IdempotencyRecord.idempotency_key == key)
        ).scalar_one_or_none()

    def reserve(
        self,
        db: Session,
        *,
        key: str,
        action_key: str,
        actor_id: str,
        request_hash: str,
    ) -> Optional[IdempotencyRecord]:
        """
        Atomic insert-or-ignore. Returns None (no error) when the key exists;
        the caller then re-fetches to see whether that attempt completed.
        """
        dialect = db.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Idempotency ledger does not support dialect {dialect!r}.")

        stmt = (
            insert(IdempotencyRecord)
            .values(
                id=uuid.uuid4(),
                idempotency_key=key,
                action_key=action_key,
                actor_user_id=actor_id,
                request_hash=request_hash,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
        )
        result = db.execute(stmt)
        if result.rowcount == 0:
            return None
        return self.find_by_key(db, key)

    def mark_completed(self, db: Session, key: str, response: Dict[str, Any]) -> IdempotencyRecord:
        row = self.find_by_key(db, key)
        if row is None:
            raise RuntimeError(f"Idempotency key {key!r} was never reserved.")
        row.response_json = response
        row.completed_at = utcnow()
        db.flush()
        return row

    # ---------------------------
    # Lifecycle protocol
    # ---------------------------

    def _assert_same_request(
        self,
        row: IdempotencyRecord,
        *,
        action_key: str,
        actor_id: str,
        request_hash: str,
    ) -> None:
        if (
            row.request_hash != request_hash
            or row.action_key != action_key
            or row.actor_user_id != actor_id
        ):
            self.log.warning(
                "idempotency_key_conflict",
                extra={"idempotency_key": row.idempotency_key, "action": action_key},
            )
            raise IdempotencyKeyConflict(
                "Idempotency key reuse with a different request is not allowed.",
                details={"idempotencyKey": row.idempotency_key},
            )

    def begin(
        self,
        db: Session,
        *,
        key: Optional[str],
        action_key: str,
        actor_id: str,
        request_hash: str,
    ) -> IdempotencyClaim:
        """
        1. Completed record for the key -> replay its response.
        2. Otherwise reserve. Lost the race -> re-fetch; replay if the winner
           completed, else proceed (the entity transition itself is guarded
           by the row lock + state check).
        """
        if not key:
            return IdempotencyClaim(key=None, request_hash=request_hash)

        existing = self.find_by_key(db, key)
        if existing is not None:
            self._assert_same_request(existing, action_key=action_key, actor_id=actor_id, request_hash=request_hash)
            if existing.is_completed:
                self.log.info("idempotent_replay", extra={"idempotency_key": key, "action": action_key})
                return IdempotencyClaim(key=key, request_hash=request_hash, replay=existing.response_json)

        # second attempt covers a winner that rolled back between our insert and re-fetch
        for _ in range(2):
            if self.reserve(db, key=key, action_key=action_key, actor_id=actor_id, request_hash=request_hash):
                return IdempotencyClaim(key=key, request_hash=request_hash, holds_reservation=True)

            concurrent = self.find_by_key(db, key)
            if concurrent is None:
                continue
            self._assert_same_request(concurrent, action_key=action_key, actor_id=actor_id, request_hash=request_hash)
            if concurrent.is_completed:
                self.log.info("idempotent_replay_after_race", extra={"idempotency_key": key, "action": action_key})
                return IdempotencyClaim(key=key, request_hash=request_hash, replay=concurrent.response_json)
            break

        self.log.info("idempotency_reservation_lost", extra={"idempotency_key": key, "action": action_key})
        return IdempotencyClaim(key=key, request_hash=request_hash)

    def finish(self, db: Session, claim: IdempotencyClaim, response: Dict[str, Any]) -> None:
        """Persist the response under the key before the transaction commits."""
        if claim.key and claim.holds_reservation:
            self.mark_completed(db, claim.key, response)
