"""Bearer-token lookup for the HTTP layer."""

from __future__ import annotations

from fastapi import Header, HTTPException

from agentstream import chat_store


async def get_current_user(authorization: str | None = Header(default=None)) -> str:
    """Resolve ``Authorization: Bearer <token>`` to a user id, or 401."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = await chat_store.resolve_api_token(token.strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
