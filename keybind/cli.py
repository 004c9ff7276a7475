"""
Command-line interface for keybind.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import click

from keybind.common.config import Config
from keybind.common.exceptions import LicenseError
from keybind.common.models import CreateLicenseRequest
from keybind.server import start_server
from keybind.server.audit_log import AuditLog
from keybind.server.domain.admin_handler import AdminHandler
from keybind.server.keygen import KeyGenerator
from keybind.server.store import LicenseStore

data_dir_option = click.option(
    "--data-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding licenses.json and audit_log.jsonl "
    "(default: from KEYBIND_DATA_DIR env or ./keybind/data)",
)


def _admin_handler(data_dir: Path | None) -> AdminHandler:
    config = Config()
    data_dir = data_dir or config.DATA_DIR
    return AdminHandler(
        store=LicenseStore(data_dir / config.LICENSES_FILE_PATH.name),
        audit_log=AuditLog(data_dir / config.AUDIT_LOG_FILE_PATH.name),
        key_generator=KeyGenerator(prefix=config.KEY_PREFIX),
        max_retries=config.STORE_MAX_RETRIES,
    )


@click.group()
def cli() -> None:
    """keybind license server CLI"""


@cli.command()
@data_dir_option
@click.option(
    "--host",
    default=None,
    help="Host to bind server to (default: from KEYBIND_SERVER_HOST env or 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to bind server to (default: from KEYBIND_SERVER_PORT env or 8000)",
)
def serve(data_dir: Path | None, host: str | None, port: int | None) -> None:
    """Start the license server"""
    start_server(Config(), data_dir=data_dir, server_host=host, server_port=port)


@cli.command()
@click.option(
    "--package",
    "package_type",
    type=click.Choice(Config().PACKAGE_TYPES),
    default="complete",
    show_default=True,
    help="Package type",
)
@click.option("--holder", required=True, help="License holder name")
@click.option("--office", default=None, help="Office name")
@click.option("--email", default=None, help="Holder email")
@click.option("--phone", default=None, help="Holder phone")
@click.option("--address", default=None, help="Holder address")
@click.option(
    "--expires",
    default=None,
    type=click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]),
    help="Expiry date (UTC)",
)
@click.option("--count", default=1, type=click.IntRange(min=1), help="Number of keys")
@data_dir_option
def generate(  # noqa: PLR0913
    package_type: str,
    holder: str,
    office: str | None,
    email: str | None,
    phone: str | None,
    address: str | None,
    expires: datetime | None,
    count: int,
    data_dir: Path | None,
) -> None:
    """Generate license keys"""
    handler = _admin_handler(data_dir)
    click.echo(f"Generating {count} license key(s)...")
    click.echo(f"  Package: {package_type} | Holder: {holder}")

    request = CreateLicenseRequest(
        package_type=package_type,
        holder_name=holder,
        office_name=office,
        holder_email=email,
        holder_phone=phone,
        address=address,
        expires_at=expires,
    )
    for _ in range(count):
        try:
            lic = handler.create_license(request)
        except LicenseError as e:
            raise click.ClickException(str(e)) from e
        click.echo(f"  {lic.key}")
    click.echo(f"Done! {count} key(s) created.")


@cli.command()
@click.argument("key")
@data_dir_option
def unbind(key: str, data_dir: Path | None) -> None:
    """Release the domain binding of a license key"""
    handler = _admin_handler(data_dir)
    try:
        lic = handler.unbind_key(key)
    except LicenseError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Unbound {lic.key}")


@cli.command()
@data_dir_option
def stats(data_dir: Path | None) -> None:
    """Print license and piracy statistics"""
    handler = _admin_handler(data_dir)
    click.echo(
        json.dumps(handler.stats().model_dump(mode="json", by_alias=True), indent=2)
    )


if __name__ == "__main__":
    cli()
