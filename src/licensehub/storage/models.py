"""SQLAlchemy ORM models for licenses, submissions and their audit trails."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class LicenseStatus(StrEnum):
    """Lifecycle states of a license. ``revoked`` is terminal."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    REVOKED = "revoked"


class VerificationOutcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


class Base(DeclarativeBase):
    pass


class LicenseKey(Base):
    """A signed license token bound to one machine. Rows are never deleted."""

    __tablename__ = "license_keys"
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'revoked')",
            name="ck_license_keys_status",
        ),
        # At most one active license per machine.
        Index(
            "uq_license_keys_active_machine",
            "machine_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    license_key: Mapped[str] = mapped_column(Text, unique=True, index=True)
    machine_id: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(20), default=LicenseStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "licenseKey": self.license_key,
            "machineId": self.machine_id,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


class UserSubmission(Base):
    """The customer request behind a license. Only ``license_key_id`` is ever updated."""

    __tablename__ = "user_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    machine_id: Mapped[str] = mapped_column(String(128), index=True)
    phone: Mapped[str] = mapped_column(String(20), default="")
    shop_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    number_of_cashiers: Mapped[int] = mapped_column(Integer)
    submission_date: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)
    ip_address: Mapped[str] = mapped_column(String(45), default="")
    license_key_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("license_keys.id"), nullable=True, index=True
    )


class LicenseStatusLog(Base):
    """Append-only record of one status transition."""

    __tablename__ = "license_status_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    license_key_id: Mapped[int] = mapped_column(Integer, ForeignKey("license_keys.id"), index=True)
    old_status: Mapped[str] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20))
    admin_id: Mapped[int] = mapped_column(Integer, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "licenseKeyId": self.license_key_id,
            "oldStatus": self.old_status,
            "newStatus": self.new_status,
            "adminId": self.admin_id,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class VerificationLog(Base):
    """Append-only record of one verification attempt, successful or not."""

    __tablename__ = "verification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    license_key_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("license_keys.id"), nullable=True, index=True
    )
    machine_id: Mapped[str] = mapped_column(String(128), index=True)
    status: Mapped[str] = mapped_column(String(20))  # success, failed
    message: Mapped[str] = mapped_column(Text, default="")
    ip_address: Mapped[str] = mapped_column(String(45), default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)


class AdminUser(Base):
    """Dashboard administrator account."""

    __tablename__ = "admin_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(150), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class ApiKey(Base):
    """Client API key. Only the SHA-256 hash of the key is stored."""

    __tablename__ = "api_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), default="")
    key_prefix: Mapped[str] = mapped_column(String(16), default="")
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
