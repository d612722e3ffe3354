"""licensehub command line: key management, offline issuance and admin setup."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import click

from licensehub.config import load_config
from licensehub.errors import LicensingError
from licensehub.licensing.codec import LicenseCodec
from licensehub.licensing.keys import (
    FileKeyProvider,
    StaticKeyProvider,
    generate_key_pair,
    load_public_key,
    write_key_pair,
)
from licensehub.storage.database import close_db, init_db

T = TypeVar("T")


def _run_with_db(func: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine against the configured database."""
    settings = load_config()

    async def _main() -> T:
        await init_db(settings.storage.sqlite_path)
        try:
            return await func()
        finally:
            await close_db()

    return asyncio.run(_main())


@click.group()
def cli() -> None:
    """licensehub CLI for license keys and server administration."""


@cli.command("generate-keys")
@click.option("--force", is_flag=True, help="Replace an existing key pair")
def generate_keys(force: bool) -> None:
    """Generate the RSA key pair used to sign licenses."""
    signing = load_config().signing
    private_path = Path(signing.private_key_path)

    if private_path.exists() and not force:
        click.echo(
            f"Error: {private_path} already exists. Use --force to replace it "
            "(licenses signed with the old key will stop verifying).",
            err=True,
        )
        raise SystemExit(1)

    key = generate_key_pair(signing.key_size)
    write_key_pair(key, signing.private_key_path, signing.public_key_path)
    click.echo(f"Private key written to {signing.private_key_path}")
    click.echo(f"Public key written to {signing.public_key_path}")


@cli.command("issue")
@click.argument("machine_id")
@click.argument("app_name")
@click.argument("max_users", type=int)
@click.option("--days", "days_valid", type=int, default=None, help="Days until expiry")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append a JSON record of the issued license to this file",
)
def issue(
    machine_id: str,
    app_name: str,
    max_users: int,
    days_valid: int | None,
    log_file: Path | None,
) -> None:
    """Sign a license offline without touching the database."""
    signing = load_config().signing
    codec = LicenseCodec(FileKeyProvider(signing.private_key_path, signing.public_key_path))

    try:
        encoded = codec.encode(machine_id, app_name, max_users, days_valid)
    except LicensingError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)

    click.echo(encoded.serial_key)

    if log_file is not None:
        record: dict[str, Any] = {
            **encoded.payload,
            "serialKey": encoded.serial_key,
            "generatedAt": datetime.now(UTC).isoformat(),
        }
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(log_file, "a") as f:
            f.write(json.dumps(record) + "\n")


@cli.command("verify")
@click.argument("serial")
@click.option(
    "--public-key",
    "public_key_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="PEM public key to verify against (defaults to the configured key)",
)
def verify(serial: str, public_key_path: Path | None) -> None:
    """Check a license token's signature and print its payload."""
    if public_key_path is not None:
        provider = StaticKeyProvider(public_key=load_public_key(public_key_path))
    else:
        signing = load_config().signing
        provider = FileKeyProvider(signing.private_key_path, signing.public_key_path)

    result = LicenseCodec(provider).verify(serial.strip())
    click.echo(json.dumps(result.to_dict(), indent=2))
    sys.exit(0 if result.valid else 1)


@cli.command("create-admin")
@click.option("--username", prompt=True, help="Username for the new administrator")
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Password for the new administrator",
)
def create_admin_command(username: str, password: str) -> None:
    """Create a dashboard administrator."""
    from licensehub.auth.admins import create_admin

    try:
        admin = _run_with_db(lambda: create_admin(username, password))
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1)

    click.echo(f"Admin '{admin.username}' created successfully.")


@cli.command("create-api-key")
@click.option("--name", default="", help="Label for the client using this key")
def create_api_key_command(name: str) -> None:
    """Create an API key for client software. The key is shown once."""
    from licensehub.auth.api_keys import create_api_key

    created = _run_with_db(lambda: create_api_key(name))
    click.echo(f"API key #{created['key_id']} ({created['name'] or 'unnamed'}):")
    click.echo(created["plain_key"])


@cli.command("revoke-api-key")
@click.argument("key_id", type=int)
def revoke_api_key_command(key_id: int) -> None:
    """Revoke a client API key so it no longer authenticates."""
    from licensehub.auth.api_keys import revoke_api_key

    if not _run_with_db(lambda: revoke_api_key(key_id)):
        click.echo(f"Error: API key #{key_id} not found or already revoked.", err=True)
        raise SystemExit(1)

    click.echo(f"API key #{key_id} revoked.")


@cli.command("serve")
def serve() -> None:
    """Run the license server."""
    from licensehub.main import main

    main()


if __name__ == "__main__":
    cli()
