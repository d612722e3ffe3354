"""License verification for client software, with a best-effort audit log."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from licensehub.errors import OperationFailed
from licensehub.storage.database import get_session, write_transaction
from licensehub.storage.models import (
    LicenseKey,
    LicenseStatus,
    UserSubmission,
    VerificationLog,
    VerificationOutcome,
)
from licensehub.storage.repositories import find_governing_license, find_submission_for_license

logger = logging.getLogger("licensehub.licensing.verification")

MSG_NOT_FOUND = "No license found for this machine ID"
MSG_EXPIRED = "License has expired"
MSG_VALID = "License is valid"


@dataclass
class VerificationResult:
    """Answer to "is this machine licensed right now?"."""

    valid: bool
    message: str
    license: dict[str, Any] | None = None
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid, "message": self.message}
        if self.license is not None:
            data["license"] = self.license
            data["expiresAt"] = self.expires_at.isoformat() if self.expires_at else None
        return data


class LicenseVerifier:
    """Evaluates a machine's governing license and logs every attempt."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC).replace(tzinfo=None))

    async def verify_license(self, machine_id: str, ip_address: str | None = None) -> VerificationResult:
        """Check whether *machine_id* holds an active, unexpired license.

        The lookup prefers the newest active row and otherwise the newest
        row, the same rule issuance uses. A failure to write the
        verification log never changes the returned result.
        """
        try:
            async with get_session() as session:
                license_row = await find_governing_license(session, machine_id)
                submission = (
                    await find_submission_for_license(session, license_row.id)
                    if license_row is not None
                    else None
                )
        except SQLAlchemyError as exc:
            logger.exception("Verification lookup failed for machine %s", machine_id)
            raise OperationFailed("Database query failed during license verification") from exc

        result = self._evaluate(license_row, submission)
        await self._record_attempt(license_row, machine_id, result, ip_address)

        logger.info(
            "Verification for machine %s: %s (%s)",
            machine_id,
            "valid" if result.valid else "invalid",
            result.message,
        )
        return result

    def _evaluate(
        self,
        license_row: LicenseKey | None,
        submission: UserSubmission | None,
    ) -> VerificationResult:
        if license_row is None:
            return VerificationResult(valid=False, message=MSG_NOT_FOUND)

        if license_row.status != LicenseStatus.ACTIVE:
            return VerificationResult(valid=False, message=f"License is {license_row.status}")

        if license_row.expires_at is not None and license_row.expires_at < self._clock():
            return VerificationResult(valid=False, message=MSG_EXPIRED)

        return VerificationResult(
            valid=True,
            message=MSG_VALID,
            license={
                "licenseKey": license_row.license_key,
                "status": license_row.status,
                "shopName": submission.shop_name if submission else "Unknown",
                "customerName": submission.name if submission else "Unknown",
            },
            expires_at=license_row.expires_at,
        )

    async def _record_attempt(
        self,
        license_row: LicenseKey | None,
        machine_id: str,
        result: VerificationResult,
        ip_address: str | None,
    ) -> None:
        outcome = VerificationOutcome.SUCCESS if result.valid else VerificationOutcome.FAILED
        try:
            async with write_transaction() as session:
                session.add(
                    VerificationLog(
                        license_key_id=license_row.id if license_row is not None else None,
                        machine_id=machine_id,
                        status=outcome.value,
                        message=result.message,
                        ip_address=ip_address or "",
                    )
                )
        except Exception:
            logger.warning(
                "Could not record verification attempt for machine %s", machine_id, exc_info=True
            )
