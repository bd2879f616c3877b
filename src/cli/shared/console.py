"""Console output and error handling shared by the devloop commands."""

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from functools import wraps
from typing import Any

import typer
from rich.console import Console, ConsoleRenderable
from rich.panel import Panel
from rich.table import Table

from src.engine.errors import DevLoopError

CHANGE_COLORS = {"added": "green", "removed": "red", "modified": "yellow"}


class CLIConsole:
    """Rich console wrapper for consistent CLI output."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def print(self, msg: ConsoleRenderable | str | None = None) -> None:
        self.console.print(msg)

    def info(self, msg: str) -> None:
        self.console.print(f"[cyan]ℹ[/cyan]  {msg}")

    def ok(self, msg: str) -> None:
        self.console.print(f"[green]✅[/green] {msg}")

    def error(self, msg: str) -> None:
        self.console.print(f"[red]❌[/red] {msg}")

    def warn(self, msg: str) -> None:
        self.console.print(f"[yellow]⚠️[/yellow]  {msg}")

    def handle_error(
        self, message: str, details: str | None = None, exit_code: int = 1
    ) -> None:
        """Print an error (and its details) and exit.

        Raises:
            typer.Exit: Always, with ``exit_code``
        """
        self.error(f"[bold red]{message}[/bold red]")
        if details:
            self.console.print(Panel(details, title="Details", border_style="red"))
        raise typer.Exit(exit_code)

    def print_header(self, title: str, style: str = "blue") -> None:
        self.console.print(Panel.fit(f"[bold {style}]{title}[/bold {style}]", border_style=style))

    def print_subheader(self, title: str) -> None:
        self.console.print(f"\n[bold underline]{title}[/bold underline]\n")

    def print_changes(self, changes: Sequence[Mapping[str, Any]]) -> None:
        """Render change records (in their document form) as a table.

        Args:
            changes: Records with ``kind``, ``path`` and ``newValue``/``oldValue``
        """
        if not changes:
            self.info("No changes detected")
            return

        table = Table(title=f"Changes ({len(changes)})")
        table.add_column("Kind", style="bold")
        table.add_column("Path", style="cyan")
        table.add_column("Value", style="dim", overflow="fold")
        for doc in changes:
            kind = doc["kind"]
            color = CHANGE_COLORS.get(kind, "white")
            table.add_row(
                f"[{color}]{kind}[/{color}]",
                json.dumps(doc["path"]),
                json.dumps(doc.get("newValue", doc.get("oldValue")), sort_keys=True),
            )
        self.console.print(table)

    def print_sessions(self, rows: Sequence[Mapping[str, Any]]) -> None:
        """Render live session status rows."""
        table = Table(title=f"Live sessions ({len(rows)})")
        table.add_column("Image", style="cyan")
        table.add_column("Pod")
        table.add_column("Container")
        table.add_column("Namespace")
        table.add_column("Active")
        table.add_column("Watching", overflow="fold")
        for row in rows:
            table.add_row(
                row["image"],
                row["pod"],
                row["container"],
                row["namespace"],
                "[green]yes[/green]" if row["active"] else "[red]no[/red]",
                "\n".join(row["watching"]),
            )
        self.console.print(table)

    def print_live_plan(self, plan: Iterable[tuple[str, Sequence[str]]]) -> None:
        """Render the live steps each image would activate."""
        entries = list(plan)
        if not entries:
            return
        self.print_subheader("Live updates")
        for image_name, steps in entries:
            self.console.print(f"[bold]{image_name}[/bold]")
            for step in steps:
                self.console.print(f"  • {step}", markup=False)


def with_error_handling(func: Callable[..., None]) -> Callable[..., None]:
    """Wrap a command so engine errors end in a clean exit.

    DevLoopError prints its message and details and exits with code 1;
    Ctrl-C exits with code 130.
    """

    @wraps(func)
    def wrapper(*args: object, **kwargs: object) -> None:
        try:
            func(*args, **kwargs)
        except DevLoopError as e:
            console.handle_error(e.message, e.details)
        except KeyboardInterrupt:
            console.print("\n[dim]Interrupted.[/dim]")
            raise typer.Exit(130) from None

    return wrapper


console = CLIConsole()
