"""Process-wide licensing engines (mirrors the get_settings() pattern)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .codec import LicenseCodec
from .issuance import LicenseIssuer
from .keys import FileKeyProvider, KeyProvider
from .status import LicenseStatusManager
from .verification import LicenseVerifier

if TYPE_CHECKING:
    from ..config import Settings

@dataclass
class LicensingEngines:
    codec: LicenseCodec
    issuer: LicenseIssuer
    status: LicenseStatusManager
    verifier: LicenseVerifier

_engines: LicensingEngines | None = None

def init_engines(
    settings: Settings | None = None,
    key_provider: KeyProvider | None = None,
) -> LicensingEngines:
    """Build the engines once at startup.

    The key provider defaults to the PEM files named in the settings.
    """
    global _engines
    if settings is None:
        from ..config import get_settings

        settings = get_settings()
    if key_provider is None:
        key_provider = FileKeyProvider(
            settings.signing.private_key_path,
            settings.signing.public_key_path,
        )

    codec = LicenseCodec(key_provider)
    _engines = LicensingEngines(
        codec=codec,
        issuer=LicenseIssuer(
            codec,
            max_attempts=settings.issuance.max_attempts,
            days_valid=settings.issuance.days_valid,
        ),
        status=LicenseStatusManager(),
        verifier=LicenseVerifier(),
    )
    return _engines

def get_engines() -> LicensingEngines:
    """Get the global engines, building them from settings on first use."""
    if _engines is None:
        return init_engines()
    return _engines

def reset_engines() -> None:
    """Reset the singleton (for testing)."""
    global _engines
    _engines = None

# FastAPI dependency accessors

def get_issuer() -> LicenseIssuer:
    return get_engines().issuer

def get_status_manager() -> LicenseStatusManager:
    return get_engines().status

def get_verifier() -> LicenseVerifier:
    return get_engines().verifier
