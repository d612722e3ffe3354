"""License issuance: mint a unique token and persist it with its submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.config import MAX_GENERATION_ATTEMPTS
from licensehub.errors import (
    DuplicateMachineId,
    LicenseGenerationExhausted,
    LicensingError,
    OperationFailed,
)
from licensehub.licensing.codec import EncodedLicense, LicenseCodec
from licensehub.storage.database import get_session, write_transaction
from licensehub.storage.models import LicenseKey, LicenseStatus, UserSubmission
from licensehub.storage.repositories import (
    count_rows,
    find_active_license,
    find_governing_license,
    list_licenses_for_machine,
    serial_key_exists,
)

logger = logging.getLogger("licensehub.licensing.issuance")


@dataclass
class SubmissionData:
    """A validated license request, not yet persisted."""

    name: str
    machine_id: str
    shop_name: str
    number_of_cashiers: int
    phone: str = ""
    email: str | None = None
    ip_address: str = ""


class LicenseIssuer:
    """Generates licenses and stores them atomically with their submission.

    ``shop_name`` fills the token's ``appName`` slot and
    ``number_of_cashiers`` its ``maxUsers`` slot.
    """

    def __init__(
        self,
        codec: LicenseCodec,
        max_attempts: int = MAX_GENERATION_ATTEMPTS,
        days_valid: int | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._codec = codec
        self.max_attempts = max_attempts
        self.days_valid = days_valid

    async def check_machine_id_exists(self, machine_id: str) -> LicenseKey | None:
        """Return the governing license for a machine, or ``None``."""
        try:
            async with get_session() as session:
                return await find_governing_license(session, machine_id)
        except SQLAlchemyError as exc:
            logger.exception("Lookup failed for machine %s", machine_id)
            raise OperationFailed("Database query failed while checking machine ID") from exc

    async def get_licenses_by_machine_id(
        self,
        machine_id: str,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[LicenseKey], int]:
        """One newest-first page of a machine's licenses and the total row count."""
        try:
            async with get_session() as session:
                rows = await list_licenses_for_machine(session, machine_id, limit, offset)
                total = await count_rows(session, LicenseKey, machine_id=machine_id)
        except SQLAlchemyError as exc:
            logger.exception("License history lookup failed for machine %s", machine_id)
            raise OperationFailed(
                "Database query failed while fetching licenses for machine ID"
            ) from exc
        return rows, total

    async def generate_and_store_license(self, submission: UserSubmission) -> LicenseKey:
        """Mint a license for an already persisted submission and link the two.

        The license insert and the submission back-link commit together.
        """
        try:
            async with write_transaction() as session:
                encoded = await self._mint_unique(
                    session,
                    submission.machine_id,
                    submission.shop_name,
                    submission.number_of_cashiers,
                )
                license_row = await self._insert_license(
                    session, submission.machine_id, encoded
                )
                await session.execute(
                    update(UserSubmission)
                    .where(UserSubmission.id == submission.id)
                    .values(license_key_id=license_row.id)
                )
        except LicensingError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Storing license for submission #%s failed", submission.id)
            raise OperationFailed("Failed to store the generated license") from exc

        submission.license_key_id = license_row.id
        logger.info(
            "Issued license #%d for machine %s (submission #%s)",
            license_row.id,
            license_row.machine_id,
            submission.id,
        )
        return license_row

    async def create_license_with_transaction(self, data: SubmissionData) -> LicenseKey:
        """Record a submission and issue its license as one unit of work.

        Raises:
            DuplicateMachineId: the machine already holds an active license.
                Checked before anything is written, and again inside the
                transaction to close the race between two requests.
            LicenseGenerationExhausted: every candidate key collided. The
                submission insert is rolled back with everything else.
        """
        machine_id = data.machine_id.strip()

        existing = await self.check_machine_id_exists(machine_id)
        if existing is not None and existing.status == LicenseStatus.ACTIVE:
            logger.info(
                "Rejected license request for machine %s: license #%d is active",
                machine_id,
                existing.id,
            )
            raise DuplicateMachineId()

        try:
            async with write_transaction() as session:
                submission = UserSubmission(
                    name=data.name,
                    machine_id=machine_id,
                    phone=data.phone,
                    shop_name=data.shop_name,
                    email=data.email,
                    number_of_cashiers=data.number_of_cashiers,
                    ip_address=data.ip_address,
                )
                session.add(submission)
                await session.flush()

                encoded = await self._mint_unique(
                    session, machine_id, data.shop_name, data.number_of_cashiers
                )
                license_row = await self._insert_license(session, machine_id, encoded)
                submission.license_key_id = license_row.id
        except LicensingError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("License transaction for machine %s rolled back", machine_id)
            raise OperationFailed("Failed to store the license request") from exc

        logger.info(
            "Issued license #%d for machine %s (submission #%d, shop %r)",
            license_row.id,
            machine_id,
            submission.id,
            data.shop_name,
        )
        return license_row

    async def _mint_unique(
        self,
        session: AsyncSession,
        machine_id: str,
        app_name: str,
        max_users: int,
    ) -> EncodedLicense:
        # Each encode carries a new issue date, so a retry signs a new payload.
        for attempt in range(1, self.max_attempts + 1):
            encoded = self._codec.encode(machine_id, app_name, max_users, self.days_valid)
            if not await serial_key_exists(session, encoded.serial_key):
                return encoded
            logger.warning(
                "Serial key collision for machine %s (attempt %d/%d)",
                machine_id,
                attempt,
                self.max_attempts,
            )
        logger.error(
            "Gave up generating a license for machine %s after %d collisions",
            machine_id,
            self.max_attempts,
        )
        raise LicenseGenerationExhausted()

    async def _insert_license(
        self,
        session: AsyncSession,
        machine_id: str,
        encoded: EncodedLicense,
    ) -> LicenseKey:
        if await find_active_license(session, machine_id) is not None:
            logger.info("Machine %s gained an active license concurrently", machine_id)
            raise DuplicateMachineId()

        license_row = LicenseKey(
            license_key=encoded.serial_key,
            machine_id=machine_id,
            status=LicenseStatus.ACTIVE.value,
            expires_at=encoded.expires_at,
        )
        session.add(license_row)
        await session.flush()
        return license_row
