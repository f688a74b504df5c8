import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import get_database
from app.db.unit_of_work import Database

router = APIRouter()
log = logging.getLogger(__name__)


@router.get("/health")
def health(request: Request, database: Database = Depends(get_database)):
    rid = getattr(request.state, "request_id", None)
    try:
        with database.reader() as db:
            db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as e:
        log.warning("health_db_unreachable", extra={"error": str(e)})
        db_status = "unavailable"
    return {"status": "ok", "database": db_status, "request_id": rid}
