"""Shared fixtures: an in-memory signing key and a throwaway SQLite database."""

from __future__ import annotations

import pytest

from licensehub.config import Settings, StorageConfig, reset_settings
from licensehub.licensing.codec import LicenseCodec
from licensehub.licensing.keys import StaticKeyProvider, generate_key_pair
from licensehub.licensing.registry import init_engines, reset_engines
from licensehub.storage.database import close_db, init_db


@pytest.fixture(scope="session")
def rsa_key():
    return generate_key_pair(2048)


@pytest.fixture
def key_provider(rsa_key):
    return StaticKeyProvider(rsa_key)


@pytest.fixture
def codec(key_provider):
    return LicenseCodec(key_provider)


@pytest.fixture
def settings(tmp_path):
    return Settings(storage=StorageConfig(data_dir=str(tmp_path)))


@pytest.fixture(autouse=True)
def _reset():
    reset_settings()
    reset_engines()
    yield
    reset_settings()
    reset_engines()


@pytest.fixture()
async def db(tmp_path):
    """Fresh SQLite file per test, wired into get_session()."""
    await init_db(str(tmp_path / "licensehub-test.db"))
    yield
    await close_db()


@pytest.fixture()
async def engines(db, settings, key_provider):
    return init_engines(settings, key_provider=key_provider)
