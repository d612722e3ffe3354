"""Error taxonomy for license issuance, status and verification."""

from __future__ import annotations


class LicensingError(Exception):
    """Base class for all licensing failures.

    ``code`` is a stable machine-readable identifier and ``status_code`` the
    HTTP status the API layer answers with.
    """

    code = "licensing_error"
    status_code = 500
    default_message = "Licensing operation failed"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)


class InvalidLicenseParameters(LicensingError):
    """Bad input to license encoding. Not retried; the caller must fix it."""

    code = "invalid_license_parameters"
    status_code = 400
    default_message = "Invalid license parameters"


class SigningKeyUnavailable(LicensingError):
    """The private signing key could not be loaded (deployment defect)."""

    code = "signing_key_unavailable"
    status_code = 500
    default_message = "Signing key is not available"


class LicenseGenerationExhausted(LicensingError):
    """Every regeneration attempt produced an already-stored serial key."""

    code = "license_generation_exhausted"
    status_code = 500
    default_message = (
        "Could not generate a unique license key after multiple attempts due to collisions"
    )


class DuplicateMachineId(LicensingError):
    """An active license already governs this machine."""

    code = "duplicate_machine_id"
    status_code = 409
    default_message = "A license already exists for this machine ID"


class LicenseAlreadyRevoked(LicensingError):
    """Revoked is terminal; no further status change is allowed."""

    code = "license_already_revoked"
    status_code = 400
    default_message = "License is already revoked"


class OperationFailed(LicensingError):
    """Storage-layer failure. Safe to retry only if nothing was committed."""

    code = "operation_failed"
    status_code = 500
    default_message = "Storage operation failed"
