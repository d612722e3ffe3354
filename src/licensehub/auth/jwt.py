"""Admin access token creation and verification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

from licensehub.config import get_settings

ALGORITHM = "HS256"


def create_access_token(admin_id: int, username: str) -> str:
    """Create a signed JWT for an administrator."""
    settings = get_settings()
    now = datetime.now(UTC)
    payload = {
        "sub": str(admin_id),
        "username": username,
        "role": "admin",
        "exp": now + timedelta(hours=settings.security.session_expiry_hours),
        "iat": now,
    }
    return jwt.encode(payload, settings.security.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT token. Raises on invalid/expired."""
    settings = get_settings()
    return jwt.decode(token, settings.security.secret_key, algorithms=[ALGORITHM])
