"""Tests for storage layer."""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from licensehub.storage import database as db_mod
from licensehub.storage.database import (
    IMMEDIATE_OPTION,
    close_db,
    get_session,
    init_db,
    write_transaction,
)
from licensehub.storage.models import LicenseKey, LicenseStatusLog, UserSubmission
from licensehub.storage.repositories import (
    count_rows,
    find_active_license,
    find_governing_license,
)


@pytest.mark.asyncio
async def test_sqlite_init_and_tables(tmp_path):
    db_path = tmp_path / "nested" / "test.db"
    await init_db(str(db_path))

    async with get_session() as session:
        async with session.begin():
            session.add(LicenseKey(license_key="k1", machine_id="M1"))

    async with get_session() as session:
        assert await count_rows(session, LicenseKey) == 1
        mode = (await session.execute(text("PRAGMA journal_mode"))).scalar_one()
        assert mode.lower() == "wal"

    await close_db()
    assert db_path.exists()


def test_session_before_init():
    assert db_mod._session_factory is None
    with pytest.raises(RuntimeError):
        get_session()


@pytest.mark.asyncio
async def test_one_active_license_per_machine(db):
    async with get_session() as session:
        async with session.begin():
            session.add(LicenseKey(license_key="k1", machine_id="M1", status="active"))
            session.add(LicenseKey(license_key="k2", machine_id="M1", status="inactive"))
            session.add(LicenseKey(license_key="k3", machine_id="M1", status="revoked"))

    with pytest.raises(IntegrityError):
        async with get_session() as session:
            async with session.begin():
                session.add(LicenseKey(license_key="k4", machine_id="M1", status="active"))


@pytest.mark.asyncio
async def test_license_key_is_unique(db):
    async with get_session() as session:
        async with session.begin():
            session.add(LicenseKey(license_key="same", machine_id="M1", status="inactive"))

    with pytest.raises(IntegrityError):
        async with get_session() as session:
            async with session.begin():
                session.add(LicenseKey(license_key="same", machine_id="M2"))


@pytest.mark.asyncio
async def test_status_constraint(db):
    with pytest.raises(IntegrityError):
        async with get_session() as session:
            async with session.begin():
                session.add(LicenseKey(license_key="k", machine_id="M1", status="suspended"))


@pytest.mark.asyncio
async def test_foreign_keys_enforced(db):
    with pytest.raises(IntegrityError):
        async with get_session() as session:
            async with session.begin():
                session.add(
                    LicenseStatusLog(
                        license_key_id=404, old_status="active", new_status="inactive", admin_id=1
                    )
                )


@pytest.mark.asyncio
async def test_find_active_license_excluding(db):
    async with get_session() as session:
        async with session.begin():
            row = LicenseKey(license_key="k1", machine_id="M1", status="active")
            session.add(row)

    async with get_session() as session:
        assert (await find_active_license(session, "M1")).id == row.id
        assert await find_active_license(session, "M1", exclude_id=row.id) is None


@pytest.mark.asyncio
async def test_count_rows_with_filters(db):
    async with get_session() as session:
        async with session.begin():
            for machine in ("M1", "M1", "M2"):
                session.add(UserSubmission(name="n", machine_id=machine, shop_name="s", number_of_cashiers=1))

    async with get_session() as session:
        assert await count_rows(session, UserSubmission) == 3
        assert await count_rows(session, UserSubmission, machine_id="M1") == 2


@pytest.mark.asyncio
async def test_write_transaction_takes_write_lock(db):
    async with write_transaction() as session:
        conn = await session.connection()
        assert conn.sync_connection.get_execution_options()[IMMEDIATE_OPTION] is True

    async with get_session() as session:
        conn = await session.connection()
        assert IMMEDIATE_OPTION not in conn.sync_connection.get_execution_options()


@pytest.mark.asyncio
async def test_open_read_does_not_block_writer(db):
    async with get_session() as reader:
        assert await find_governing_license(reader, "M1") is None

        async with write_transaction() as writer:
            writer.add(LicenseKey(license_key="k1", machine_id="M1", status="active"))

        assert await count_rows(reader, LicenseKey) == 0

    async with get_session() as session:
        assert await count_rows(session, LicenseKey) == 1
