from __future__ import annotations

from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from app.core.config import get_settings
from app.db.unit_of_work import Database


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    settings = get_settings()
    url = settings.database_url  # fail fast if missing

    options = {"pool_pre_ping": True, "future": True, "echo": settings.db_echo}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow

    return create_engine(url, **options)


@lru_cache(maxsize=1)
def get_database() -> Database:
    settings = get_settings()
    return Database(get_engine(), timeout_seconds=settings.transaction_timeout_seconds)
