"""Backup command implementation."""

import typer
from typing_extensions import Annotated

from mailvault.auth.consent import prompt_for_code
from mailvault.config import (
    build_backup_config,
    get_account,
    get_account_names,
    load_config,
)
from mailvault.errors import AuthError, ConfigError, FetchError, StorageError, TransientError
from mailvault.storage.local import BackupFile
from mailvault.sync import BackupEvents, BackupSummary, create_engine

app = typer.Typer(help="Back up a remote mailbox to a local directory")


class ConsoleEvents(BackupEvents):
    """Prints engine notifications to the terminal."""

    def on_before_backup(self, message_id: str, will_skip: bool, backup_file: BackupFile) -> None:
        if will_skip:
            typer.echo(f"Message exists locally, skipping: {backup_file.local_path}")

    def on_after_backup(self, message_id: str, progress: int, total: int) -> None:
        typer.echo(f"Message backed up successfully. Progress: {progress}/{total}")

    def on_log(self, message: str) -> None:
        typer.echo(message)

    def on_message_error(
        self, message_id: str, code: str, message: str, will_retry: bool
    ) -> None:
        action = "retrying" if will_retry else "skipping"
        typer.echo(f"Error backing up message, {action}: {code}: {message}", err=True)

    def on_message_delete(self, message_id: str, backup_file: BackupFile) -> None:
        typer.echo(f"Message not present remotely, deleting local file: {backup_file.local_path}")

    def on_end_backup(self, summary: BackupSummary) -> None:
        typer.echo()
        typer.echo("Backup cancelled." if summary.cancelled else "Backup completed.")
        typer.echo(f"  Messages backed up: {summary.backed_up}")
        typer.echo(f"  Messages skipped: {summary.skipped}")
        if summary.failed:
            typer.echo(f"  Messages failed: {summary.failed}")
        if summary.sync_deletes:
            typer.echo(f"  Messages deleted: {summary.deleted}")
        if not summary.listing_complete and not summary.cancelled:
            typer.echo("  Message list incomplete; deleted-message sync was skipped.")


@app.callback(invoke_without_command=True)
def backup(
    ctx: typer.Context,
    account: Annotated[
        str | None, typer.Option("--account", "-a", help="Account name from config.toml")
    ] = None,
    provider: Annotated[
        str | None, typer.Option("--provider", help="Mail provider: office365 or gmail")
    ] = None,
    client_id: Annotated[
        str | None, typer.Option("--id", help="OAuth client ID of the registered application")
    ] = None,
    client_secret: Annotated[
        str | None, typer.Option("--secret", help="OAuth client secret of the registered application")
    ] = None,
    path: Annotated[
        str | None, typer.Option("--path", "-p", help="Directory to save messages to")
    ] = None,
    filter: Annotated[
        str | None, typer.Option("--filter", "-f", help="Filter applied when listing messages")
    ] = None,
    start: Annotated[
        str | None, typer.Option("--start", "-s", help="Earliest message date (YYYY/MM/DD)")
    ] = None,
    end: Annotated[
        str | None, typer.Option("--end", "-e", help="Latest message date (YYYY/MM/DD)")
    ] = None,
    connections: Annotated[
        int | None, typer.Option("--connections", "-c", help="Number of simultaneous downloads")
    ] = None,
    sync_deletes: Annotated[
        bool | None,
        typer.Option(
            "--sync-deletes/--no-sync-deletes",
            "-d/-D",
            help="Delete local files for messages deleted remotely",
        ),
    ] = None,
):
    """Back up a remote mailbox to a local directory."""
    try:
        config = load_config()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    account_config = get_account(config, account)
    if account and account_config is None:
        known = ", ".join(get_account_names(config)) or "none"
        typer.echo(
            f"Account '{account}' not found in config. Configured accounts: {known}",
            err=True,
        )
        raise typer.Exit(1)

    try:
        backup_config = build_backup_config(
            account_config,
            config.get("defaults"),
            provider=provider,
            client_id=client_id,
            client_secret=client_secret,
            data_dir=path,
            filter=filter,
            start_date=start,
            end_date=end,
            max_connections=connections,
            sync_deletes=sync_deletes,
        )
        engine = create_engine(backup_config, consent=prompt_for_code, events=ConsoleEvents())
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    if backup_config.sync_deletes and (
        backup_config.filter or backup_config.start_date or backup_config.end_date
    ):
        typer.echo(
            "Warning: with a filter or date range, local messages outside it "
            "are treated as deleted remotely.",
            err=True,
        )

    typer.echo(f"Backing up {backup_config.provider} mailbox to {backup_config.data_dir}")

    try:
        summary = engine.run()
    except KeyboardInterrupt:
        typer.echo("Interrupted.", err=True)
        raise typer.Exit(130)
    except AuthError as e:
        typer.echo(f"Authorization failed: {e}", err=True)
        raise typer.Exit(1)
    except (TransientError, FetchError, StorageError) as e:
        typer.echo(f"Backup failed: {e.code}: {e}", err=True)
        raise typer.Exit(1)

    if summary.failed:
        typer.echo(f"{summary.failed} messages could not be backed up:", err=True)
        for detail in summary.error_details:
            typer.echo(f"  {detail}", err=True)
        raise typer.Exit(1)
