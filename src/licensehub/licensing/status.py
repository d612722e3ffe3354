"""License status transitions and their audit trail."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from licensehub.errors import DuplicateMachineId, LicenseAlreadyRevoked, OperationFailed
from licensehub.storage.database import get_session, write_transaction
from licensehub.storage.models import LicenseKey, LicenseStatus, LicenseStatusLog
from licensehub.storage.repositories import find_active_license, list_status_logs

logger = logging.getLogger("licensehub.licensing.status")


class LicenseStatusManager:
    """Moves licenses between active, inactive and revoked.

    Every change writes exactly one ``LicenseStatusLog`` row in the same
    transaction as the status update. ``revoked`` has no way out.
    """

    async def update_license_status(
        self,
        license_id: int,
        new_status: LicenseStatus | str,
        admin_id: int,
        reason: str | None = None,
    ) -> LicenseKey | None:
        """Change a license's status.

        Returns the updated row, the unchanged row when it already has
        *new_status*, or ``None`` when no license has this id.

        Raises:
            LicenseAlreadyRevoked: the license is revoked.
            DuplicateMachineId: reactivating while another license for the
                same machine is active.
        """
        target = LicenseStatus(new_status)

        try:
            async with write_transaction() as session:
                license_row = await session.get(LicenseKey, license_id)
                if license_row is None:
                    return None

                old_status = LicenseStatus(license_row.status)
                if old_status == LicenseStatus.REVOKED:
                    logger.info(
                        "Admin %s tried to change revoked license #%d to %s",
                        admin_id,
                        license_id,
                        target.value,
                    )
                    raise LicenseAlreadyRevoked()
                if old_status == target:
                    return license_row

                if target == LicenseStatus.ACTIVE:
                    other = await find_active_license(
                        session, license_row.machine_id, exclude_id=license_row.id
                    )
                    if other is not None:
                        raise DuplicateMachineId(
                            f"License #{other.id} is already active for this machine ID"
                        )

                license_row.status = target.value
                license_row.updated_at = datetime.now(UTC).replace(tzinfo=None)
                session.add(
                    LicenseStatusLog(
                        license_key_id=license_row.id,
                        old_status=old_status.value,
                        new_status=target.value,
                        admin_id=admin_id,
                        reason=reason,
                    )
                )
        except (LicenseAlreadyRevoked, DuplicateMachineId):
            raise
        except SQLAlchemyError as exc:
            logger.exception("Status change for license #%d failed", license_id)
            raise OperationFailed("Failed to update license status") from exc

        logger.info(
            "License #%d: %s -> %s by admin %s",
            license_id,
            old_status.value,
            target.value,
            admin_id,
        )
        return license_row

    async def revoke_license(
        self,
        license_id: int,
        admin_id: int,
        reason: str | None = None,
    ) -> LicenseKey | None:
        """Permanently revoke a license. Fails if it is already revoked."""
        return await self.update_license_status(
            license_id, LicenseStatus.REVOKED, admin_id, reason
        )

    async def get_license(self, license_id: int) -> LicenseKey | None:
        try:
            async with get_session() as session:
                return await session.get(LicenseKey, license_id)
        except SQLAlchemyError as exc:
            logger.exception("Loading license #%d failed", license_id)
            raise OperationFailed("Failed to load license") from exc

    async def get_status_history(self, license_id: int) -> list[dict[str, Any]]:
        """Transitions recorded for a license, oldest first."""
        try:
            async with get_session() as session:
                rows = await list_status_logs(session, license_id)
        except SQLAlchemyError as exc:
            logger.exception("Loading status history for license #%d failed", license_id)
            raise OperationFailed("Failed to load license status history") from exc
        return [row.to_dict() for row in rows]
