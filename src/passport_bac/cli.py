"""Command line interface for the passport BAC reader."""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click

from .config import get_settings
from .exceptions import PassportBACError, ValidationError
from .hardware import CardTransport
from .logging_config import get_logger, setup_logging
from .models.passport import DocumentRecord, IdentityInput
from .rfid.bac_keys import derive_keys_from_mrz
from .security.passport_chip_session import PassportChipSession
from .utils.mrz_utils import MRZFormatter

logger = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_INVALID_INPUT = 2


def identity_arguments(func):
    func = click.argument("date_of_expiry")(func)
    func = click.argument("date_of_birth")(func)
    return click.argument("document_number")(func)


def _fail(error: PassportBACError) -> NoReturn:
    if isinstance(error, ValidationError):
        for problem in error.errors:
            click.echo(f"Invalid input: {problem}", err=True)
        sys.exit(EXIT_INVALID_INPUT)
    click.echo(f"Error [{error.error_code}]: {error.message}", err=True)
    sys.exit(EXIT_FAILURE)


@click.group()
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR, OFF)")
@click.option("--log-format", default=None, type=click.Choice(["text", "json"]), help="Log output format")
def main(log_level: str | None, log_format: str | None) -> None:
    """Read ICAO 9303 passports over Basic Access Control."""
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_level=log_level or settings.log_level,
        log_format=log_format or settings.log_format,
    )


@main.command()
@identity_arguments
@click.option("--surname", default="UNKNOWN", show_default=True)
@click.option("--given-names", default="UNKNOWN", show_default=True)
@click.option("--country", default="UTO", show_default=True, help="Issuing state")
@click.option("--nationality", default="UTO", show_default=True)
@click.option("--sex", default="<", show_default=True, type=click.Choice(["M", "F", "X", "<"]))
def mrz(
    document_number: str,
    date_of_birth: str,
    date_of_expiry: str,
    surname: str,
    given_names: str,
    country: str,
    nationality: str,
    sex: str,
) -> None:
    """Print the TD3 MRZ and BAC key seed string for a document."""
    try:
        identity = IdentityInput.from_strings(document_number, date_of_birth, date_of_expiry)
        record = MRZFormatter.generate_mrz(
            identity.document_number,
            identity.date_of_birth,
            identity.date_of_expiry,
            surname=surname,
            given_names=given_names,
            issuing_country=country,
            nationality=nationality,
            sex=sex,
        )
    except PassportBACError as exc:
        _fail(exc)

    click.echo(record.display_format)
    click.echo(f"BAC seed: {MRZFormatter.extract_bac_seed_string(record)}")


@main.command()
@identity_arguments
def keys(document_number: str, date_of_birth: str, date_of_expiry: str) -> None:
    """Print the BAC document access keys (hex)."""
    try:
        identity = IdentityInput.from_strings(document_number, date_of_birth, date_of_expiry)
    except PassportBACError as exc:
        _fail(exc)

    record = MRZFormatter.generate_mrz(
        identity.document_number, identity.date_of_birth, identity.date_of_expiry
    )
    access_keys = derive_keys_from_mrz(record)
    click.echo(f"Seed string: {MRZFormatter.extract_bac_seed_string(record)}")
    click.echo(f"K.seed: {access_keys.key_seed.hex().upper()}")
    click.echo(f"K.enc:  {access_keys.encryption_key[:16].hex().upper()}")
    click.echo(f"K.mac:  {access_keys.mac_key[:16].hex().upper()}")


@main.command()
def readers() -> None:
    """List attached PC/SC readers."""
    from .hardware.pcsc_reader import list_readers

    try:
        names = list_readers()
    except ImportError as exc:
        click.echo(str(exc), err=True)
        sys.exit(EXIT_FAILURE)
    except PassportBACError as exc:
        _fail(exc)

    if not names:
        click.echo("No PC/SC readers found")
    for name in names:
        click.echo(name)


@main.command()
@identity_arguments
@click.option("--reader", "reader_name", default=None, help="PC/SC reader name (default: first reader)")
@click.option("--simulate", is_flag=True, help="Read from a simulated chip instead of a reader")
@click.option("--json", "as_json", is_flag=True, help="Print the document record as JSON")
def read(
    document_number: str,
    date_of_birth: str,
    date_of_expiry: str,
    reader_name: str | None,
    simulate: bool,
    as_json: bool,
) -> None:
    """Authenticate with a passport chip and print DG1."""
    settings = get_settings()

    try:
        transport = _build_transport(
            document_number, date_of_birth, date_of_expiry, reader_name, simulate
        )
        session = PassportChipSession(
            transport,
            settings=settings,
            progress=lambda message: click.echo(message, err=True),
        )
        record = session.read_document(document_number, date_of_birth, date_of_expiry)
    except ImportError as exc:
        click.echo(str(exc), err=True)
        sys.exit(EXIT_FAILURE)
    except PassportBACError as exc:
        _fail(exc)

    if as_json:
        click.echo(json.dumps(record.model_dump(mode="json"), indent=2))
    else:
        _print_record(record)


def _build_transport(
    document_number: str,
    date_of_birth: str,
    date_of_expiry: str,
    reader_name: str | None,
    simulate: bool,
) -> CardTransport:
    settings = get_settings()
    if simulate:
        from .testing.simulated_chip import SimulatedPassportChip

        logger.info("Using simulated chip")
        return SimulatedPassportChip(document_number, date_of_birth, date_of_expiry)

    from .hardware.pcsc_reader import PCSCTransport

    return PCSCTransport(
        reader_name=reader_name or settings.pcsc_reader_name,
        timeout=settings.card_wait_timeout,
    )


def _print_record(record: DocumentRecord) -> None:
    rows = [
        ("Document type", record.document_type),
        ("Issuing state", record.issuing_country),
        ("Document number", record.document_number),
        ("Surname", record.surname),
        ("Given names", record.given_names),
        ("Nationality", record.nationality),
        ("Sex", record.sex.value),
        ("Date of birth", record.date_of_birth.isoformat() if record.date_of_birth else "-"),
        ("Date of expiry", record.date_of_expiry.isoformat() if record.date_of_expiry else "-"),
        ("Personal number", record.personal_number or "-"),
    ]
    for label, value in rows:
        click.echo(f"{label:<16} {value}")


if __name__ == "__main__":
    main()
