import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.v1.router import v1_router
from app.core.config import get_settings
from app.core.errors import LifecycleError
from app.core.logging import configure_logging
from app.core.middleware import RequestIdMiddleware

log = logging.getLogger(__name__)


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    # 5xx kinds are operational, the rest are caller errors
    level = logging.WARNING if exc.http_status >= 500 else logging.INFO
    log.log(
        level,
        "lifecycle_error",
        extra={
            "kind": exc.kind.value,
            "status_code": exc.http_status,
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
        },
    )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )

    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    # typed lifecycle errors -> HTTP status
    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
