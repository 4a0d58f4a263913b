"""Session provider - resolves the caller's user id from the request."""

from __future__ import annotations

from fastapi import Header


async def current_user_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str | None:
    """Return the authenticated user id, or None when the header is absent."""
    user_id = x_user_id.strip()
    return user_id or None
