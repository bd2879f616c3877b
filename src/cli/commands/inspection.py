"""Read-only commands.

Commands:
    status   - Show the configured target and registered resources
    validate - Validate every manifest file of the registered manifests
    logs     - Show recent logs of the container running an image
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.table import Table

from src.cli.context import CLIContext, get_cli_context
from src.cli.shared.console import console, with_error_handling
from src.engine.cluster_manager import ClusterManager
from src.engine.errors import InvalidManifest
from src.engine.manifests import manifest_stats, resolve_manifest_files, validate_yaml_file
from src.engine.sync_engine import SyncEngine
from src.infra.k8s import get_k8s_controller


@with_error_handling
def status(
    ctx: typer.Context,
    file: Path | None = typer.Option(None, "--file", "-f", help="Devfile to evaluate"),
) -> None:
    """📊 Show registry, context, namespace and registered resources."""
    cli = get_cli_context(ctx)
    registry = asyncio.run(cli.load_config(file, required=False))
    if registry is None:
        console.warn(f"{cli.devfile_path(file)} not found, showing persisted state")

    state = cli.store.state
    console.print_header("devloop status")
    console.print(f"[bold]Registry:[/bold]  {state.registry}")
    console.print(f"[bold]Context:[/bold]   {state.cluster_context}")
    console.print(f"[bold]Namespace:[/bold] {state.namespace}")
    console.print(f"[dim]State file: {cli.store.state_file}[/dim]")

    builds = Table(title=f"Builds ({len(state.build_specs)})")
    builds.add_column("Image", style="cyan")
    builds.add_column("Context")
    builds.add_column("Dockerfile")
    builds.add_column("Live steps", justify="right")
    for name, spec in sorted(state.build_specs.items()):
        builds.add_row(
            name,
            spec.build_context.context,
            spec.build_context.dockerfile,
            str(len(spec.live_steps)),
        )
    console.print(builds)

    manifests = Table(title=f"Manifests ({len(state.manifest_specs)})")
    manifests.add_column("Path", style="cyan")
    manifests.add_column("Files", justify="right")
    manifests.add_column("Kinds")
    for path in sorted(state.manifest_specs):
        stats = manifest_stats(resolve_manifest_files(path, cli.project_root))
        kinds = ", ".join(f"{kind} x{count}" for kind, count in sorted(stats.kinds.items()))
        manifests.add_row(path, str(stats.files), kinds or "-")
    console.print(manifests)


async def _validate(
    cli: CLIContext, *, offline: bool, devfile: Path | None
) -> list[tuple[Path, str | None]]:
    await cli.load_config(devfile)
    state = cli.store.state

    files: list[Path] = []
    for path in sorted(state.manifest_specs):
        for file in resolve_manifest_files(path, cli.project_root):
            if file not in files:
                files.append(file)

    results: list[tuple[Path, str | None]] = []
    if offline:
        for file in files:
            check = validate_yaml_file(file)
            results.append((file, None if check.valid else check.error))
        return results

    cluster = ClusterManager(
        get_k8s_controller(cli.settings.k8s_backend),
        state.cluster_context,
        state.namespace,
        cli.settings,
        project_root=cli.project_root,
    )
    await cluster.verify_context()
    for file in files:
        try:
            await cluster.validate_file(file)
        except InvalidManifest as e:
            results.append((file, e.details or e.message))
        else:
            results.append((file, None))
    return results


@with_error_handling
def validate(
    ctx: typer.Context,
    offline: bool = typer.Option(
        False, "--offline", help="Only parse files locally, skip the cluster dry run"
    ),
    file: Path | None = typer.Option(None, "--file", "-f", help="Devfile to evaluate"),
) -> None:
    """✅ Validate every manifest file the devfile registers.

    Exits with code 1 if any file is invalid.
    """
    cli = get_cli_context(ctx)
    results = asyncio.run(_validate(cli, offline=offline, devfile=file))
    if not results:
        console.warn("No manifest files registered")
        return

    table = Table(title="Manifest validation")
    table.add_column("File", style="cyan")
    table.add_column("Result")
    table.add_column("Error", overflow="fold")
    for path, error in results:
        try:
            shown = str(path.relative_to(cli.project_root))
        except ValueError:
            shown = str(path)
        table.add_row(
            shown,
            "[green]valid[/green]" if error is None else "[red]invalid[/red]",
            error or "",
        )
    console.print(table)

    invalid = sum(1 for _, error in results if error is not None)
    if invalid:
        console.handle_error(f"{invalid} of {len(results)} manifest file(s) invalid")
    console.ok(f"All {len(results)} manifest file(s) valid")


async def _logs(cli: CLIContext, image: str, tail: int) -> str:
    await cli.store.load()
    state = cli.store.state
    engine = SyncEngine(
        get_k8s_controller(cli.settings.k8s_backend),
        state.namespace,
        cli.settings,
        project_root=cli.project_root,
    )
    return await engine.get_logs(image, tail=tail)


@with_error_handling
def logs(
    ctx: typer.Context,
    image: str = typer.Argument(..., help="Image name as registered in the devfile"),
    tail: int = typer.Option(50, "--tail", "-n", help="Number of lines to show"),
) -> None:
    """📜 Show recent logs of the container running an image."""
    cli = get_cli_context(ctx)
    output = asyncio.run(_logs(cli, image, tail))
    console.print(output.rstrip() or "[dim]No output[/dim]")
