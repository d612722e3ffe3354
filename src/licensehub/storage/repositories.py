"""License lookups shared by the issuance, status and verification engines.

Every function takes an open ``AsyncSession`` so callers decide the
transaction boundary.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.storage.models import LicenseKey, LicenseStatus, LicenseStatusLog, UserSubmission


async def find_governing_license(session: AsyncSession, machine_id: str) -> LicenseKey | None:
    """Return the license that currently governs *machine_id*.

    The newest active row wins; without one, the newest row of any status;
    ``None`` when the machine has never been licensed.
    """
    newest_first = (LicenseKey.created_at.desc(), LicenseKey.id.desc())

    result = await session.execute(
        select(LicenseKey)
        .where(
            LicenseKey.machine_id == machine_id,
            LicenseKey.status == LicenseStatus.ACTIVE.value,
        )
        .order_by(*newest_first)
        .limit(1)
    )
    active = result.scalar_one_or_none()
    if active is not None:
        return active

    result = await session.execute(
        select(LicenseKey)
        .where(LicenseKey.machine_id == machine_id)
        .order_by(*newest_first)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_active_license(
    session: AsyncSession,
    machine_id: str,
    exclude_id: int | None = None,
) -> LicenseKey | None:
    """Return an active license for *machine_id*, optionally ignoring one row."""
    stmt = select(LicenseKey).where(
        LicenseKey.machine_id == machine_id,
        LicenseKey.status == LicenseStatus.ACTIVE.value,
    )
    if exclude_id is not None:
        stmt = stmt.where(LicenseKey.id != exclude_id)
    result = await session.execute(stmt.limit(1))
    return result.scalar_one_or_none()


async def serial_key_exists(session: AsyncSession, serial_key: str) -> bool:
    result = await session.execute(
        select(LicenseKey.id).where(LicenseKey.license_key == serial_key).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_licenses_for_machine(
    session: AsyncSession,
    machine_id: str,
    limit: int = 10,
    offset: int = 0,
) -> list[LicenseKey]:
    """Newest-first license history for a machine."""
    result = await session.execute(
        select(LicenseKey)
        .where(LicenseKey.machine_id == machine_id)
        .order_by(LicenseKey.created_at.desc(), LicenseKey.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def find_submission_for_license(
    session: AsyncSession, license_id: int
) -> UserSubmission | None:
    result = await session.execute(
        select(UserSubmission)
        .where(UserSubmission.license_key_id == license_id)
        .order_by(UserSubmission.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_status_logs(session: AsyncSession, license_id: int) -> list[LicenseStatusLog]:
    result = await session.execute(
        select(LicenseStatusLog)
        .where(LicenseStatusLog.license_key_id == license_id)
        .order_by(LicenseStatusLog.timestamp.asc(), LicenseStatusLog.id.asc())
    )
    return list(result.scalars().all())


async def count_rows(session: AsyncSession, model: type, **filters: object) -> int:
    """Count rows of *model* matching simple equality filters."""
    stmt = select(func.count()).select_from(model)
    for column, value in filters.items():
        stmt = stmt.where(getattr(model, column) == value)
    result = await session.execute(stmt)
    return int(result.scalar_one())
