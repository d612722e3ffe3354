"""API key generation, hashing, and validation for client software."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select

from licensehub.storage.database import write_transaction
from licensehub.storage.models import ApiKey

logger = logging.getLogger("licensehub.auth.api_keys")

KEY_PREFIX = "lhub"


def generate_api_key() -> tuple[str, str]:
    """Generate a new API key and its SHA-256 hash.

    Returns:
        ``(plain_key, key_hash)``. Only the hash is stored; the plain key is shown once.
    """
    plain_key = f"{KEY_PREFIX}_{secrets.token_urlsafe(32)}"
    return plain_key, hash_api_key(plain_key)


def hash_api_key(plain_key: str) -> str:
    """SHA-256 hash of a plain API key."""
    return hashlib.sha256(plain_key.encode()).hexdigest()


async def create_api_key(name: str = "") -> dict[str, Any]:
    """Create a new API key. Returns the plain key (shown once)."""
    plain_key, key_hash = generate_api_key()
    prefix = plain_key[:12]

    async with write_transaction() as session:
        entry = ApiKey(name=name, key_prefix=prefix, key_hash=key_hash, is_active=True)
        session.add(entry)

    logger.info("Created API key %s... (%s)", prefix, name or "unnamed")
    return {
        "key_id": entry.id,
        "plain_key": plain_key,
        "key_prefix": prefix,
        "name": name,
    }


async def validate_api_key(plain_key: str) -> dict[str, Any] | None:
    """Validate a plain API key against the database.

    Returns ``{key_id, name}`` on success, ``None`` on failure.
    """
    if not plain_key:
        return None
    key_hash = hash_api_key(plain_key)

    async with write_transaction() as session:
        result = await session.execute(
            select(ApiKey).where(
                ApiKey.key_hash == key_hash,
                ApiKey.is_active.is_(True),
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        row.last_used_at = datetime.now(UTC).replace(tzinfo=None)
        return {"key_id": row.id, "name": row.name}


async def revoke_api_key(key_id: int) -> bool:
    """Revoke an API key by marking it inactive."""
    async with write_transaction() as session:
        row = await session.get(ApiKey, key_id)
        if row is None or not row.is_active:
            return False
        row.is_active = False
        row.revoked_at = datetime.now(UTC).replace(tzinfo=None)
    logger.info("Revoked API key #%d", key_id)
    return True
