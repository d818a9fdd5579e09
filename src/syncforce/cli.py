from __future__ import annotations

import json
import logging
from typing import Any, NoReturn, Optional

import click

from . import __version__
from .api import SalesforceAPI, SFConfig
from .env_loader import load_env_files
from .exceptions import MissingCredentialsError, SalesforceError
from .logging_config import configure_logging
from .models import Model

_logger = logging.getLogger(__name__)

# Load .env very early, so everything else sees env vars
load_env_files()


def _connect() -> SalesforceAPI:
    api = SalesforceAPI(SFConfig.from_env())
    api.connect()
    return api


def _echo_json(value: Any, pretty: bool) -> None:
    if isinstance(value, Model):
        value = value.to_json()
    elif isinstance(value, list):
        value = [v.to_json() if isinstance(v, Model) else v for v in value]
    click.echo(json.dumps(value, indent=2 if pretty else None, default=str))


def _fail(e: Exception) -> NoReturn:
    click.echo(f"Error: {e}", err=True)
    raise SystemExit(1)


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="syncforce")
@click.option(
    "-v",
    "--verbose",
    "loglevel",
    flag_value=logging.INFO,
    default=None,
    help="Enable INFO logs.",
)
@click.option(
    "-vv",
    "--very-verbose",
    "loglevel",
    flag_value=logging.DEBUG,
    help="Enable DEBUG logs.",
)
@click.pass_context
def cli(ctx: click.Context, loglevel: Optional[int]) -> None:
    """Salesforce REST client. Credentials come from SF_* environment variables."""
    configure_logging(loglevel)
    _logger.debug("CLI start, version=%s", __version__)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("login")
def cmd_login() -> None:
    """Log in and show the resulting session."""
    try:
        session = _connect().session
    except (SalesforceError, MissingCredentialsError, ValueError) as e:
        click.echo(f"❌  Login failed: {e}", err=True)
        raise click.Abort() from None

    token = session.access_token
    click.echo("✅  Logged in to Salesforce.")
    click.echo(f"Instance URL: {session.instance_url}")
    click.echo(f"API Version: {session.api_version}")
    click.echo(f"Token preview: {token[:10]}...{token[-6:]}")


@cli.command("query")
@click.argument("soql")
@click.option("--all", "include_deleted", is_flag=True, help="Include deleted and archived rows.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_query(soql: str, include_deleted: bool, pretty: bool) -> None:
    """Run a SOQL query and print every page of results."""
    try:
        api = _connect()
        res = api.query_all(soql) if include_deleted else api.query(soql)
    except (SalesforceError, MissingCredentialsError) as e:
        _fail(e)
    _echo_json(res, pretty)


@cli.command("search")
@click.argument("sosl")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_search(sosl: str, pretty: bool) -> None:
    """Run a SOSL search."""
    try:
        res = _connect().search(sosl)
    except (SalesforceError, MissingCredentialsError) as e:
        _fail(e)
    _echo_json(res, pretty)


@cli.command("find")
@click.argument("sobject_type")
@click.argument("record_id")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_find(sobject_type: str, record_id: str, pretty: bool) -> None:
    """Fetch one record by Id."""
    try:
        res = _connect().find_by_id(sobject_type, record_id)
    except (SalesforceError, MissingCredentialsError) as e:
        _fail(e)
    _echo_json(res, pretty)


@cli.command("describe")
@click.argument("sobject_type", required=False)
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_describe(sobject_type: Optional[str], pretty: bool) -> None:
    """Describe one object, or list all objects when no type is given."""
    try:
        api = _connect()
        if sobject_type:
            res: Any = api.describe(sobject_type)
        else:
            res = [o.name for o in api.describe_global().sobjects]
    except (SalesforceError, MissingCredentialsError) as e:
        _fail(e)
    _echo_json(res, pretty)


@cli.command("versions")
def cmd_versions() -> None:
    """List the API versions the instance supports."""
    try:
        api = SalesforceAPI(SFConfig.from_env())
        if not api.cfg.instance_url:
            api.connect()
        versions = api.versions()
    except (SalesforceError, MissingCredentialsError) as e:
        _fail(e)
    for v in versions:
        click.echo(f"{v.version}\t{v.label}")
