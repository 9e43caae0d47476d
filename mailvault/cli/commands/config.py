"""Config command implementation.

Creates, inspects and edits config.toml.
"""

import os

import typer
from typing_extensions import Annotated

from mailvault.config import (
    CLIENT_SECRET_ENV,
    build_backup_config,
    config_path,
    get_account,
    get_account_names,
    init_config,
    load_config,
    set_config_value,
)
from mailvault.errors import ConfigError

app = typer.Typer(help="Manage configuration")

REDACTED = "***REDACTED***"


@app.command()
def init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config")
    ] = False,
):
    """Write a commented config.toml template."""
    path = config_path()

    if not init_config(overwrite=force):
        typer.echo(f"Config already exists at {path}")
        typer.echo("Use --force to overwrite.")
        return

    typer.echo(f"Created config file: {path}")
    typer.echo()
    typer.echo("Add an [accounts.<name>] table for each mailbox to back up.")
    typer.echo(f"Keep the client secret in {CLIENT_SECRET_ENV} rather than the file.")


@app.command()
def show(
    account: Annotated[
        str | None,
        typer.Option("--account", "-a", help="Show the settings a backup of this account uses"),
    ] = None,
):
    """Display the config file, or the effective settings of one account.

    Secrets are redacted in output.
    """
    config = _load_or_exit()

    if account:
        _show_effective(config, account)
        return

    if not config:
        typer.echo("No configuration found.")
        typer.echo(f"Run 'mailvault config init' to create {config_path()}")
        return

    for table_name, table in _tables(config):
        typer.echo(f"[{table_name}]")
        for key, value in table.items():
            typer.echo(f"  {key} = {_display(key, value)}")
        typer.echo()


@app.command("set")
def set_value(
    key: Annotated[
        str,
        typer.Argument(help="Setting, e.g. 'defaults.max_connections' or 'accounts.work.data_dir'"),
    ],
    value: Annotated[str, typer.Argument(help="New value")],
):
    """Set a configuration value using dot notation.

    Examples:
        mailvault config set defaults.max_connections 8
        mailvault config set accounts.work.data_dir ~/Backup/Work
        mailvault config set accounts.work.sync_deletes true
    """
    try:
        set_config_value(key, value)
    except (ValueError, ConfigError) as e:
        typer.echo(f"Invalid value: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Set {key} = {_display(key.rsplit('.', 1)[-1], value)}")


def _load_or_exit() -> dict:
    try:
        return load_config()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)


def _tables(config: dict):
    """Yield (table name, table) pairs in file order."""
    if "defaults" in config:
        yield "defaults", config["defaults"]
    for name, account in config.get("accounts", {}).items():
        yield f"accounts.{name}", account


def _show_effective(config: dict, name: str) -> None:
    """Print the merged settings `mailvault backup --account name` would use."""
    account = get_account(config, name)
    if account is None:
        known = ", ".join(get_account_names(config)) or "none"
        typer.echo(f"Account '{name}' not found. Configured accounts: {known}", err=True)
        raise typer.Exit(1)

    try:
        settings = build_backup_config(account, config.get("defaults"))
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    if account.get("client_secret"):
        secret = REDACTED
    elif os.environ.get(CLIENT_SECRET_ENV):
        secret = f"{REDACTED} (from {CLIENT_SECRET_ENV})"
    else:
        secret = "(not set)"

    typer.echo(f"[accounts.{name}] effective settings")
    typer.echo(f"  provider = {settings.provider}")
    typer.echo(f"  client_id = {settings.client_id or '(not set)'}")
    typer.echo(f"  client_secret = {secret}")
    typer.echo(f"  data_dir = {settings.data_dir or '(not set)'}")
    typer.echo(f"  filter = {settings.filter or '(none)'}")
    typer.echo(f"  start_date = {settings.start_date or '(none)'}")
    typer.echo(f"  end_date = {settings.end_date or '(none)'}")
    typer.echo(f"  max_connections = {settings.max_connections}")
    typer.echo(f"  max_retries = {settings.max_retries}")
    typer.echo(f"  sync_deletes = {settings.sync_deletes}")
    typer.echo(f"  auth_url = {settings.auth_url}")
    typer.echo(f"  token_url = {settings.token_url}")
    typer.echo(f"  scope = {settings.scope}")


def _display(key: str, value) -> str:
    if key == "client_secret":
        return REDACTED if value else "(not set)"
    return str(value)
