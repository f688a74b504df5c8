from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from app.core.config import get_settings

IDEMPOTENCY_HEADER = "Idempotency-Key"


async def optional_idempotency_key(request: Request) -> Optional[str]:
    """
    Lifecycle actions are retry-safe only when the caller sends a key, so the
    header is optional here (a body `idempotencyKey` takes precedence).
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if key is None:
        return None
    key = key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="Empty Idempotency-Key header.")
    if len(key) > get_settings().idempotency_key_max_length:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long.")
    return key
