"""License token encoding and verification.

A token is ``base64(payload JSON) + "." + base64(signature)`` where the
signature is RSA PKCS#1 v1.5 over SHA-256 of the raw JSON bytes. The
payload is readable by anyone; only its integrity is protected.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from licensehub.errors import InvalidLicenseParameters
from licensehub.licensing.keys import KeyProvider

logger = logging.getLogger("licensehub.licensing.codec")

SEPARATOR = "."
_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(moment: datetime) -> str:
    """Render a UTC instant as ISO-8601 with microseconds and a ``Z`` suffix."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC).replace(tzinfo=None)
    return moment.strftime(_ISO_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a codec timestamp back into a naive UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _b64decode_canonical(segment: str) -> bytes:
    # Lenient decoders ignore the unused trailing bits, so two different
    # strings can carry the same bytes. Only the canonical spelling passes.
    raw = base64.b64decode(segment, validate=True)
    if base64.b64encode(raw).decode("ascii") != segment:
        raise ValueError("Non-canonical base64 segment")
    return raw


@dataclass
class EncodedLicense:
    """A freshly minted license token and the grant it carries."""

    serial_key: str
    payload: dict[str, Any]
    issue_date: str
    expires_date: str | None = None

    @property
    def expires_at(self) -> datetime | None:
        return parse_timestamp(self.expires_date) if self.expires_date else None


@dataclass
class DecodedLicense:
    """Outcome of verifying a token. Never raised, always returned."""

    valid: bool
    payload: dict[str, Any] | None = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid}
        if self.payload is not None:
            data["payload"] = self.payload
        if self.error:
            data["error"] = self.error
        return data


class LicenseCodec:
    """Mints and verifies signed license tokens.

    The key provider is injected so the same logic runs against PEM files,
    a secret manager, or in-memory test keys.
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._keys = key_provider
        self._clock = clock or (lambda: datetime.now(UTC).replace(tzinfo=None))
        self._last_issue: datetime | None = None
        self._lock = threading.Lock()

    def _next_issue_instant(self) -> datetime:
        # Issue dates are strictly increasing within the process so that
        # identical inputs never sign the same payload twice.
        with self._lock:
            now = self._clock()
            if now.tzinfo is not None:
                now = now.astimezone(UTC).replace(tzinfo=None)
            if self._last_issue is not None and now <= self._last_issue:
                now = self._last_issue + timedelta(microseconds=1)
            self._last_issue = now
            return now

    def encode(
        self,
        machine_id: str,
        app_name: str,
        max_users: int,
        days_valid: int | None = None,
    ) -> EncodedLicense:
        """Build, sign and serialize a license payload.

        Raises:
            InvalidLicenseParameters: blank machine id / app name, or a
                non-positive user or day count.
            SigningKeyUnavailable: the private key cannot be loaded.
        """
        if not isinstance(machine_id, str) or not machine_id.strip():
            raise InvalidLicenseParameters("machineId is required and must be a non-empty string")
        if not isinstance(app_name, str) or not app_name.strip():
            raise InvalidLicenseParameters("appName is required and must be a non-empty string")
        if isinstance(max_users, bool) or not isinstance(max_users, int) or max_users < 1:
            raise InvalidLicenseParameters("maxUsers is required and must be a positive integer")
        if days_valid is not None and (
            isinstance(days_valid, bool) or not isinstance(days_valid, int) or days_valid < 1
        ):
            raise InvalidLicenseParameters("daysValid must be a positive integer when provided")

        private_key = self._keys.private_key()

        issued = self._next_issue_instant()
        issue_date = format_timestamp(issued)
        payload: dict[str, Any] = {
            "machineId": machine_id.strip(),
            "appName": app_name.strip(),
            "maxUsers": max_users,
            "issueDate": issue_date,
        }
        expires_date = None
        if days_valid is not None:
            payload["daysValid"] = days_valid
            expires_date = format_timestamp(issued + timedelta(days=days_valid))

        payload_json = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        signature = private_key.sign(payload_json, padding.PKCS1v15(), hashes.SHA256())

        serial_key = (
            base64.b64encode(payload_json).decode("ascii")
            + SEPARATOR
            + base64.b64encode(signature).decode("ascii")
        )
        return EncodedLicense(
            serial_key=serial_key,
            payload=payload,
            issue_date=issue_date,
            expires_date=expires_date,
        )

    def verify(self, serial_key: str, public_key: rsa.RSAPublicKey | None = None) -> DecodedLicense:
        """Check a token's signature and return its payload.

        Uses *public_key* when given, otherwise the provider's public key.
        Any failure, malformed input included, yields ``valid=False``.
        """
        if not isinstance(serial_key, str):
            return DecodedLicense(valid=False, error="Invalid serial format")
        parts = serial_key.split(SEPARATOR)
        if len(parts) != 2:
            return DecodedLicense(valid=False, error="Invalid serial format")

        payload_b64, signature_b64 = parts
        try:
            payload_json = _b64decode_canonical(payload_b64)
            signature = _b64decode_canonical(signature_b64)
            payload = json.loads(payload_json.decode("utf-8"))
            if not isinstance(payload, dict):
                return DecodedLicense(valid=False, error="Invalid payload")
            key = public_key or self._keys.public_key()
            key.verify(signature, payload_json, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            return DecodedLicense(valid=False, error="Invalid signature")
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError) as exc:
            return DecodedLicense(valid=False, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            logger.warning("License verification failed unexpectedly: %s", exc)
            return DecodedLicense(valid=False, error=str(exc) or type(exc).__name__)

        return DecodedLicense(valid=True, payload=payload)
