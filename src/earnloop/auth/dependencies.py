"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from earnloop.auth.jwt import verify_token

_bearer = HTTPBearer()


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> dict:
    """Extract and verify the bearer JWT. Raises 401 on failure."""
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    return payload


async def get_current_user_id(payload: dict = Depends(get_token_payload)) -> int:
    """
    Return the authenticated user id.

    Ban status is not checked here: every ledger operation checks it first and
    reports ``AccountBanned`` with a stable error code.
    """
    try:
        return int(payload["sub"])
    except (KeyError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid subject claim") from e


async def require_admin(payload: dict = Depends(get_token_payload)) -> int:
    if payload.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return int(payload["sub"])
