import logging
import sys
from pythonjsonlogger import jsonlogger
from app.core.config import Settings

# Audit-relevant failures are emitted here, apart from developer diagnostics.
AUDIT_LOGGER_NAME = "app.audit"


def configure_logging(settings: Settings) -> None:
    """
    Structured logging (JSON) for the lifecycle engine.

    Fields passed through `extra=` (budget_id, contract_id, action, ...) land
    as top-level JSON keys.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # clear handlers if reloaded
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    fmt = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
    )
    handler.setFormatter(fmt)
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)
