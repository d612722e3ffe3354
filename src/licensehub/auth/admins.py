"""Administrator accounts: bcrypt password hashing, creation and login."""

from __future__ import annotations

import logging

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from licensehub.storage.database import get_session, write_transaction
from licensehub.storage.models import AdminUser

logger = logging.getLogger("licensehub.auth.admins")


def hash_password(plain: str) -> str:
    """Hash a plaintext password with bcrypt."""
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


async def create_admin(username: str, password: str) -> AdminUser:
    """Create an administrator. Raises ``ValueError`` if the name is taken."""
    try:
        async with write_transaction() as session:
            admin = AdminUser(username=username, password_hash=hash_password(password))
            session.add(admin)
    except IntegrityError as exc:
        raise ValueError(f"Admin '{username}' already exists") from exc
    logger.info("Created admin %s (#%d)", username, admin.id)
    return admin


async def authenticate_admin(username: str, password: str) -> AdminUser | None:
    """Return the active admin matching the credentials, else ``None``."""
    async with get_session() as session:
        result = await session.execute(
            select(AdminUser).where(
                AdminUser.username == username,
                AdminUser.is_active.is_(True),
            )
        )
        admin = result.scalar_one_or_none()

    if admin is None or not verify_password(password, admin.password_hash):
        logger.info("Failed admin login for %s", username)
        return None
    return admin
