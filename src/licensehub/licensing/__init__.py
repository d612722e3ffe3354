"""License issuance, status and verification engines."""

from .codec import DecodedLicense, EncodedLicense, LicenseCodec
from .issuance import LicenseIssuer, SubmissionData
from .keys import FileKeyProvider, KeyProvider, StaticKeyProvider, generate_key_pair
from .registry import (
    get_engines,
    get_issuer,
    get_status_manager,
    get_verifier,
    init_engines,
    reset_engines,
)
from .status import LicenseStatusManager
from .verification import LicenseVerifier, VerificationResult

__all__ = [
    "DecodedLicense",
    "EncodedLicense",
    "FileKeyProvider",
    "KeyProvider",
    "LicenseCodec",
    "LicenseIssuer",
    "LicenseStatusManager",
    "LicenseVerifier",
    "StaticKeyProvider",
    "SubmissionData",
    "VerificationResult",
    "generate_key_pair",
    "get_engines",
    "get_issuer",
    "get_status_manager",
    "get_verifier",
    "init_engines",
    "reset_engines",
]
