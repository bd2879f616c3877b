"""CLI context and dependency container."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import click
import typer
from dotenv import load_dotenv

from src.cli.devfile import DevfileRegistry, load_devfile
from src.cli.shared.console import CLIConsole, console
from src.engine.errors import ConfigError
from src.engine.orchestrator import Orchestrator
from src.engine.settings import EngineSettings
from src.engine.state_store import StateStore
from src.utils.paths import get_project_root


@dataclass
class CLIContext:
    """Runtime dependencies for CLI commands."""

    console: CLIConsole
    project_root: Path
    settings: EngineSettings
    store: StateStore
    verbose: bool = False

    def devfile_path(self, override: Path | None = None) -> Path:
        """Absolute path of the devfile to evaluate."""
        path = override or self.settings.devfile
        return path if path.is_absolute() else self.project_root / path

    async def load_config(
        self, devfile: Path | None = None, *, required: bool = True
    ) -> DevfileRegistry | None:
        """Load persisted state, then evaluate the devfile.

        Args:
            devfile: Devfile to use instead of the configured one
            required: Raise ConfigError when the devfile is missing

        Returns:
            Registry of the evaluated devfile, or None when it is missing
            and not required
        """
        await self.store.load()
        path = self.devfile_path(devfile)
        if not path.is_file() and not required:
            return None
        return load_devfile(path, self.store)

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(self.store, self.settings, project_root=self.project_root)


def build_cli_context(verbose: bool = False) -> CLIContext:
    """Build a fresh CLIContext.

    Variables from the project's ``.env`` are loaded first without
    overriding the environment, then settings are read from it.
    """
    project_root = get_project_root()
    load_dotenv(project_root / ".env", override=False)
    try:
        settings = EngineSettings.from_env()
    except ValueError as e:
        raise ConfigError(str(e), details="Check the DEVLOOP_* environment variables.") from e

    return CLIContext(
        console=console,
        project_root=project_root,
        settings=settings,
        store=StateStore.from_settings(settings, project_root),
        verbose=verbose,
    )


def get_cli_context(ctx: typer.Context | None = None) -> CLIContext:
    """Return the CLIContext from Typer, falling back to a new instance."""
    context = ctx or click.get_current_context(silent=True)
    if context and isinstance(context.obj, CLIContext):
        return context.obj
    return build_cli_context()
