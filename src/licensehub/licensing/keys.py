"""RSA signing key material.

The private key signs license payloads and never leaves the server. The
public key is what client software embeds for offline verification. Keys
are generated once per deployment and read-only at runtime.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from licensehub.errors import SigningKeyUnavailable

if TYPE_CHECKING:
    from licensehub.config import Settings

logger = logging.getLogger("licensehub.licensing.keys")

DEFAULT_KEY_SIZE = 2048


@runtime_checkable
class KeyProvider(Protocol):
    """Supplies the signing key pair to the codec."""

    def private_key(self) -> rsa.RSAPrivateKey: ...
    def public_key(self) -> rsa.RSAPublicKey: ...


class StaticKeyProvider:
    """Key provider over keys already held in memory."""

    def __init__(
        self,
        private_key: rsa.RSAPrivateKey | None = None,
        public_key: rsa.RSAPublicKey | None = None,
    ) -> None:
        if private_key is None and public_key is None:
            raise ValueError("StaticKeyProvider needs at least one key")
        self._private = private_key
        self._public = public_key or private_key.public_key()  # type: ignore[union-attr]

    def private_key(self) -> rsa.RSAPrivateKey:
        if self._private is None:
            raise SigningKeyUnavailable("No private key configured (verification-only provider)")
        return self._private

    def public_key(self) -> rsa.RSAPublicKey:
        return self._public


class FileKeyProvider:
    """Key provider backed by PEM files.

    Each key is read on first use and cached for the life of the process.
    A missing public key file falls back to the private key's public half.
    """

    def __init__(self, private_key_path: str | Path, public_key_path: str | Path | None = None) -> None:
        self.private_key_path = Path(private_key_path)
        self.public_key_path = Path(public_key_path) if public_key_path else None
        self._private: rsa.RSAPrivateKey | None = None
        self._public: rsa.RSAPublicKey | None = None
        self._lock = threading.Lock()

    def private_key(self) -> rsa.RSAPrivateKey:
        if self._private is None:
            with self._lock:
                if self._private is None:
                    self._private = _load_private_key(self.private_key_path)
        return self._private

    def public_key(self) -> rsa.RSAPublicKey:
        if self._public is None:
            with self._lock:
                if self._public is None:
                    if self.public_key_path is not None and self.public_key_path.exists():
                        self._public = load_public_key(self.public_key_path)
                    else:
                        self._public = _load_private_key(self.private_key_path).public_key()
        return self._public


def _load_private_key(path: Path) -> rsa.RSAPrivateKey:
    try:
        key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    except (OSError, ValueError, TypeError) as exc:
        logger.error("Cannot load signing key from %s: %s", path, exc)
        raise SigningKeyUnavailable(f"Private key not readable at {path}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SigningKeyUnavailable(f"Key at {path} is not an RSA private key")
    return key


def load_public_key(path: str | Path) -> rsa.RSAPublicKey:
    """Read an RSA public key from a PEM file."""
    key = serialization.load_pem_public_key(Path(path).read_bytes())
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError(f"Key at {path} is not an RSA public key")
    return key


def generate_key_pair(key_size: int = DEFAULT_KEY_SIZE) -> rsa.RSAPrivateKey:
    """Generate a fresh RSA private key (public exponent 65537)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def write_key_pair(
    private_key: rsa.RSAPrivateKey,
    private_key_path: str | Path,
    public_key_path: str | Path,
) -> None:
    """Persist a key pair as PEM files. The private file is made owner-only."""
    private_path = Path(private_key_path)
    public_path = Path(public_key_path)
    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)

    private_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    private_path.chmod(0o600)
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )


def ensure_signing_keys(settings: Settings) -> bool:
    """Generate the deployment's key pair on first start.

    Returns True when a new pair was written. Existing keys are never
    replaced; rotation is a deliberate ``licensehub generate-keys --force``.
    """
    signing = settings.signing
    if Path(signing.private_key_path).exists() or not signing.generate_if_missing:
        return False

    key = generate_key_pair(signing.key_size)
    write_key_pair(key, signing.private_key_path, signing.public_key_path)
    logger.warning(
        "Generated new %d-bit signing key pair at %s; distribute %s to client software",
        signing.key_size,
        signing.private_key_path,
        signing.public_key_path,
    )
    return True
