"""Reconciler CLI - Kafka cluster reconciliation operator."""

import logging

import typer
from rich.logging import RichHandler

from reconciler_core.cli.ca import ca_app
from reconciler_core.cli.operator import operator_app
from reconciler_core.cli.storage import storage_app

app = typer.Typer(
    name="reconciler",
    help="Reconcile Kafka clusters towards their declared state",
    no_args_is_help=True,
)

# Add command groups
app.add_typer(operator_app, name="operator")
app.add_typer(ca_app, name="ca")
app.add_typer(storage_app, name="storage")


@app.callback()
def configure_logging(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Install the rich log handler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
