"""Reconciliation commands.

Commands:
    up      - Build, deploy and (optionally) live-update registered resources
    down    - Tear down registered resources
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from src.cli.context import CLIContext, get_cli_context
from src.cli.shared.console import console, with_error_handling
from src.engine.orchestrator import Orchestrator, UpResult


def _print_result(result: UpResult) -> None:
    console.print_changes(result.changes_document())
    console.print_live_plan((entry.image_name, entry.steps) for entry in result.live_plan)


async def _up(
    cli: CLIContext, *, dry_run: bool, dev_mode: bool, devfile: Path | None
) -> UpResult:
    await cli.load_config(devfile)
    orchestrator = cli.orchestrator()
    result = await orchestrator.up(dry_run=dry_run, dev_mode=dev_mode)

    if dry_run:
        console.print_header("Dry run: nothing was changed", style="yellow")
        _print_result(result)
        return result

    console.print_changes(result.changes_document())
    if result.failed_images:
        console.error(f"Failed images: {', '.join(result.failed_images)}")
    if result.failed_manifests:
        console.error(f"Failed manifests: {', '.join(result.failed_manifests)}")
    if not result.persisted:
        console.warn("State was not persisted")

    if result.sessions:
        await _watch(orchestrator, result.sessions)
    return result


async def _watch(orchestrator: Orchestrator, sessions: list[str]) -> None:
    console.ok(f"Live updates active for {', '.join(sessions)}")
    if orchestrator.sync is not None:
        console.print_sessions(orchestrator.sync.sessions())
    console.print("[dim]Press Ctrl-C to stop watching (resources stay deployed).[/dim]")
    try:
        await asyncio.Event().wait()
    finally:
        await orchestrator.stop()


@with_error_handling
def up(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the change set and live-update plan without applying anything",
    ),
    dev: bool = typer.Option(
        True,
        "--dev/--no-dev",
        help="Start live updates after a successful pass and keep watching",
    ),
    file: Path | None = typer.Option(
        None,
        "--file",
        "-f",
        help="Devfile to evaluate (defaults to devfile.py in the project root)",
    ),
) -> None:
    """🚀 Build, deploy and live-update registered resources.

    Evaluates the devfile, compares it with the last applied state and
    applies only what changed: images are built and pushed concurrently,
    manifests are applied in order.

    Examples:
        # Apply changes and start live updates
        devloop up

        # Preview what would change
        devloop up --dry-run
    """
    cli = get_cli_context(ctx)
    result = asyncio.run(_up(cli, dry_run=dry_run, dev_mode=dev, devfile=file))

    if result.dry_run or result.skipped:
        return
    if result.success:
        console.ok("Up to date")
    else:
        console.handle_error(
            "Reconciliation finished with failures",
            details=(
                f"builds ok: {result.build_ok}, manifests ok: {result.manifest_ok}\n"
                "Successful changes were persisted; fix the failures and run up again."
            ),
        )


@with_error_handling
def down(ctx: typer.Context) -> None:
    """🛑 Delete deployed manifests and remove built images.

    Every step is best effort: failures are reported and teardown continues.
    """
    cli = get_cli_context(ctx)
    asyncio.run(cli.orchestrator().down())
    console.ok("Teardown finished")
