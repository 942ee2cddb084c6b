"""Storage CLI commands.

- diff: Check offline whether a storage change would be accepted
"""

from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.table import Table

from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.storage import diff_storage, parse_storage

storage_app = typer.Typer(help="Validate storage changes")


def _load(path: Path) -> dict:
    # JSON is a subset of YAML
    data = yaml.safe_load(path.read_text())
    if not isinstance(data, dict):
        raise InvalidResourceError(f"{path} does not contain a storage object")
    return data


@storage_app.command("diff")
def diff(
    old: Path = typer.Argument(..., exists=True, dir_okay=False, help="Current storage (JSON or YAML)"),
    new: Path = typer.Argument(..., exists=True, dir_okay=False, help="Desired storage (JSON or YAML)"),
    current: int = typer.Option(..., "--current", help="Replicas before the change"),
    desired: int = typer.Option(..., "--desired", help="Replicas after the change"),
) -> None:
    """Diff two storage definitions and report whether the change is allowed."""
    console = Console()
    try:
        result = diff_storage(parse_storage(_load(old)), parse_storage(_load(new)), current, desired)
    except InvalidResourceError as e:
        console.print(f"[red]Invalid storage:[/red] {e}")
        raise typer.Exit(2)

    table = Table(title="Storage diff")
    table.add_column("Check", style="cyan")
    table.add_column("Result", justify="center")
    table.add_row("Type changed", str(result.type_changed))
    table.add_row("Volumes added or removed", str(result.volumes_added_or_removed))
    table.add_row("Size grown", str(result.size_grown))
    table.add_row("Size shrunk", str(result.size_shrunk))
    table.add_row("Empty", str(result.is_empty))
    table.add_row("Allowed", "[green]yes[/green]" if result.is_allowed else "[red]no[/red]")
    console.print(table)

    for change in result.rejected_changes:
        console.print(f"  [red]-[/red] {change}")
    if not result.is_allowed:
        raise typer.Exit(1)
