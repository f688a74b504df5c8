# app/db/unit_of_work.py
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import LifecycleError, Unavailable

T = TypeVar("T")


class Database:
    """
    Transactional gateway over a pooled engine.

    The Session yielded by `transaction()` is the unit of work: every
    repository call receives it explicitly. Repositories never open their
    own sessions, so a lifecycle operation is one atomic commit or nothing.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        timeout_seconds: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.engine = engine
        self.timeout_seconds = timeout_seconds
        self.session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )
        self.log = logger or logging.getLogger(__name__)

    def _apply_statement_timeout(self, db: Session) -> None:
        if self.engine.dialect.name != "postgresql":
            return
        ms = int(self.timeout_seconds * 1000)
        # SET does not accept bind parameters
        db.execute(text(f"SET LOCAL statement_timeout = {ms}"))

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        begin -> body -> commit; rollback on any error; session always closed.

        Timeouts and connection failures surface as `Unavailable`.
        """
        db = self.session_factory()
        started = time.monotonic()
        try:
            self._apply_statement_timeout(db)
            yield db
            elapsed = time.monotonic() - started
            if elapsed > self.timeout_seconds:
                raise Unavailable(
                    "Transaction exceeded its time budget and was rolled back.",
                    details={"timeoutSeconds": self.timeout_seconds},
                )
            db.commit()
        except LifecycleError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            self.log.warning("transaction_unavailable", extra={"error": str(e.orig)})
            raise Unavailable("Database unavailable; transaction rolled back.") from e
        except DBAPIError as e:
            db.rollback()
            if e.connection_invalidated:
                self.log.warning("transaction_connection_lost", extra={"error": str(e.orig)})
                raise Unavailable("Database connection lost; transaction rolled back.") from e
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run(self, callback: Callable[[Session], T]) -> T:
        with self.transaction() as db:
            return callback(db)

    @contextmanager
    def reader(self) -> Iterator[Session]:
        """Read-only session; whatever happens inside is rolled back."""
        db = self.session_factory()
        try:
            yield db
        finally:
            db.rollback()
            db.close()
