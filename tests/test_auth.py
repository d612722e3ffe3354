"""Tests for admin accounts, access tokens and API keys."""

from __future__ import annotations

import jwt
import pytest

from licensehub.auth.admins import authenticate_admin, create_admin, hash_password, verify_password
from licensehub.auth.api_keys import (
    KEY_PREFIX,
    create_api_key,
    generate_api_key,
    hash_api_key,
    revoke_api_key,
    validate_api_key,
)
from licensehub.auth.jwt import ALGORITHM, create_access_token, decode_access_token
from licensehub.config import get_settings
from licensehub.storage.database import get_session
from licensehub.storage.models import ApiKey


def test_password_hashing():
    hashed = hash_password("hunter2")
    assert hashed != "hunter2"
    assert verify_password("hunter2", hashed)
    assert not verify_password("hunter3", hashed)
    assert not verify_password("hunter2", "not-a-bcrypt-hash")


def test_access_token_round_trip():
    token = create_access_token(42, "root")
    payload = decode_access_token(token)
    assert payload["sub"] == "42"
    assert payload["username"] == "root"
    assert payload["role"] == "admin"


def test_access_token_wrong_secret():
    token = jwt.encode({"sub": "1"}, "some-other-secret", algorithm=ALGORITHM)
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(token)


def test_access_token_expiry(monkeypatch):
    monkeypatch.setattr(get_settings().security, "session_expiry_hours", -1)
    token = create_access_token(1, "root")
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token)


def test_generate_api_key():
    plain, hashed = generate_api_key()
    assert plain.startswith(f"{KEY_PREFIX}_")
    assert hashed == hash_api_key(plain)
    assert len(hashed) == 64


class TestAdminAccounts:
    @pytest.mark.asyncio
    async def test_create_and_authenticate(self, db):
        admin = await create_admin("root", "s3cret")

        assert (await authenticate_admin("root", "s3cret")).id == admin.id
        assert await authenticate_admin("root", "wrong") is None
        assert await authenticate_admin("nobody", "s3cret") is None

    @pytest.mark.asyncio
    async def test_duplicate_username(self, db):
        await create_admin("root", "a")
        with pytest.raises(ValueError):
            await create_admin("root", "b")


class TestApiKeys:
    @pytest.mark.asyncio
    async def test_only_hash_is_stored(self, db):
        created = await create_api_key("till")

        async with get_session() as session:
            row = await session.get(ApiKey, created["key_id"])
        assert row.key_hash == hash_api_key(created["plain_key"])
        assert created["plain_key"] not in (row.key_hash, row.key_prefix)

    @pytest.mark.asyncio
    async def test_validate_and_revoke(self, db):
        created = await create_api_key("till")

        assert await validate_api_key(created["plain_key"]) == {
            "key_id": created["key_id"],
            "name": "till",
        }
        async with get_session() as session:
            assert (await session.get(ApiKey, created["key_id"])).last_used_at is not None

        assert await revoke_api_key(created["key_id"]) is True
        assert await revoke_api_key(created["key_id"]) is False
        assert await validate_api_key(created["plain_key"]) is None

    @pytest.mark.asyncio
    async def test_unknown_key(self, db):
        assert await validate_api_key("") is None
        assert await validate_api_key("lhub_nope") is None
