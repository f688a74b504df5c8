#app/core/auth_deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.security import decode_token

bearer = HTTPBearer(auto_error=True)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller; actor_id is recorded on every audit entry."""
    actor_id: str
    display_name: Optional[str] = None


def get_current_actor(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Actor:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid and unexpired
    - `sub` is present (it becomes the actor id)
    """
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    actor = Actor(actor_id=str(subject), display_name=payload.get("display_name"))

    # downstream handlers read the actor from request state
    request.state.actor = actor
    return actor
