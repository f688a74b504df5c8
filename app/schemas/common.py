from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class IdempotentRequest(BaseModel):
    """
    Body fields shared by every retry-safe lifecycle action.
    The Idempotency-Key header is accepted as well; the body wins.
    """
    idempotencyKey: Optional[str] = Field(None, min_length=1, max_length=128)
    requestHash: Optional[str] = Field(None, max_length=128)


class ErrorResponse(BaseModel):
    error: str
    detail: str
    context: Optional[dict] = None
