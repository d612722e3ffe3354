"""FastAPI dependencies for admin and API key authentication."""

from __future__ import annotations

from typing import Any

from fastapi import Cookie, Header, HTTPException, status

from licensehub.auth.api_keys import validate_api_key
from licensehub.auth.jwt import decode_access_token

TOKEN_COOKIE = "licensehub_token"


async def get_current_admin(
    authorization: str = Header(default=""),
    licensehub_token: str = Cookie(default=""),
) -> dict[str, Any]:
    """Extract and verify the admin JWT from a Bearer header or cookie.

    Returns the decoded token payload with ``admin_id`` set, or raises 401.
    """
    token = licensehub_token
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        token = credentials.strip()

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        payload = decode_access_token(token)
        payload["admin_id"] = int(payload["sub"])
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def require_api_key(x_api_key: str = Header(default="")) -> dict[str, Any]:
    """Validate the ``X-API-Key`` header against stored key hashes."""
    key = await validate_api_key(x_api_key)
    if key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return key
