"""Main CLI application module.

This module provides the main entry point for the devloop CLI.

Commands:
- up: Build, deploy and live-update what the devfile registers
- down: Tear everything down again
- status: Show the target and registered resources
- validate: Validate registered manifest files
- logs: Show container logs for an image
"""

import typer

from src.engine.errors import DevLoopError
from src.utils.logging import configure_logging

from .commands import down, logs, status, up, validate
from .context import build_cli_context
from .shared.console import console

# Create the main CLI application
app = typer.Typer(
    help="🔁 devloop - build, deploy and live-update containers on Kubernetes",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


@app.callback()
def _main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show debug output (commands, build logs)"
    ),
) -> None:
    configure_logging(verbose)
    try:
        ctx.obj = build_cli_context(verbose=verbose)
    except DevLoopError as e:
        console.handle_error(e.message, e.details)


app.command()(up)
app.command()(down)
app.command()(status)
app.command()(validate)
app.command()(logs)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
