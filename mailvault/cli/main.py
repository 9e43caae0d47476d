"""Main CLI entry point for mailvault."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from typing_extensions import Annotated

from mailvault import __version__
from mailvault.cli import commands

app = typer.Typer(
    name="mailvault",
    help="Back up Office 365 and Gmail mailboxes to local files",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(commands.backup.app, name="backup")
app.add_typer(commands.config.app, name="config")


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr through rich, keeping stdout for events."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback()
def main_options(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Show debug logging")
    ] = False,
):
    """Back up Office 365 and Gmail mailboxes to local files."""
    configure_logging(verbose)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"mailvault version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
