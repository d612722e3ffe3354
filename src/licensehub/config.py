"""licensehub configuration system using pydantic-settings with YAML support."""

from __future__ import annotations

import logging
import secrets
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Upper bound on serial-key regeneration when a candidate collides.
MAX_GENERATION_ATTEMPTS = 5


class ServerConfig(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 3001
    workers: int = 1
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class StorageConfig(BaseModel):
    """Database storage paths."""

    data_dir: str = "/data"
    sqlite_path: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.sqlite_path:
            self.sqlite_path = str(Path(self.data_dir) / "licensehub.db")


class SigningConfig(BaseModel):
    """RSA key material used to sign and verify license tokens."""

    private_key_path: str = ""
    public_key_path: str = ""
    key_size: int = 2048
    generate_if_missing: bool = True


class IssuanceConfig(BaseModel):
    """License issuance policy."""

    max_attempts: int = Field(default=MAX_GENERATION_ATTEMPTS, ge=1)
    days_valid: int | None = None  # None issues perpetual licenses


class SecurityConfig(BaseModel):
    """Admin authentication settings."""

    secret_key: str = "change-me-on-first-run"
    session_expiry_hours: int = 24


class Settings(BaseSettings):
    """Root configuration for the license server."""

    model_config = SettingsConfigDict(
        env_prefix="LICENSEHUB_",
        env_nested_delimiter="__",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    issuance: IssuanceConfig = Field(default_factory=IssuanceConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)

    debug: bool = False

    def model_post_init(self, __context: Any) -> None:
        data_dir = Path(self.storage.data_dir)
        if not self.signing.private_key_path:
            self.signing.private_key_path = str(data_dir / "private_key.pem")
        if not self.signing.public_key_path:
            self.signing.public_key_path = str(data_dir / "public_key.pem")


def load_config(config_path: str | Path | None = None) -> Settings:
    """Load configuration from YAML file and environment variables.

    Sections present in the YAML file are taken as given; everything else
    falls back to ``LICENSEHUB_*`` environment variables, then defaults.
    """
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        candidates = [
            Path("licensehub.yaml"),
            Path("licensehub.yml"),
            Path("/etc/licensehub/licensehub.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    return Settings(**yaml_data)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings singleton."""
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (for testing)."""
    global _settings
    _settings = None


_DEFAULT_SECRET = "change-me-on-first-run"
_logger = logging.getLogger("licensehub")


def ensure_secret_key(settings: Settings) -> None:
    """Auto-generate the admin JWT secret on first run if none was configured.

    The generated key is persisted to ``{data_dir}/.secret_key`` so issued
    admin tokens survive restarts.
    """
    if settings.security.secret_key != _DEFAULT_SECRET:
        return

    secret_file = Path(settings.storage.data_dir) / ".secret_key"

    if secret_file.exists():
        settings.security.secret_key = secret_file.read_text().strip()
        _logger.info("Loaded secret key from %s", secret_file)
    else:
        key = secrets.token_urlsafe(32)
        secret_file.write_text(key)
        secret_file.chmod(0o600)
        settings.security.secret_key = key
        _logger.info("Generated new secret key and saved to %s", secret_file)
