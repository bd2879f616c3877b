"""Tests for CLI context dependency injection."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest
import typer

from src.cli.context import CLIContext, build_cli_context, get_cli_context
from src.engine.errors import ConfigError
from src.engine.settings import EngineSettings
from src.engine.state_store import StateStore


@pytest.fixture
def cli(tmp_path: Path) -> CLIContext:
    settings = EngineSettings()
    return CLIContext(
        console=Mock(),
        project_root=tmp_path,
        settings=settings,
        store=StateStore.from_settings(settings, tmp_path),
    )


@patch("src.cli.context.get_project_root")
def test_build_cli_context_creates_all_dependencies(mock_get_root, tmp_path, monkeypatch):
    """Test that build_cli_context wires settings and the store to the project root."""
    monkeypatch.delenv("DEVLOOP_PORT", raising=False)
    mock_get_root.return_value = tmp_path

    ctx = build_cli_context()

    assert ctx.console is not None
    assert ctx.project_root == tmp_path
    assert ctx.store.project_root == tmp_path
    assert ctx.store.state_file == tmp_path / ".devloop" / "state-3001.json"


@patch("src.cli.context.get_project_root")
def test_build_cli_context_reads_dotenv(mock_get_root, tmp_path, monkeypatch):
    """Test that .env values feed the settings without overriding the environment."""
    # Record DEVLOOP_PORT so the value loaded from .env is undone afterwards
    monkeypatch.setenv("DEVLOOP_PORT", "0")
    monkeypatch.delenv("DEVLOOP_PORT")
    monkeypatch.setenv("DEVLOOP_DEFAULT_NAMESPACE", "from-env")
    (tmp_path / ".env").write_text("DEVLOOP_PORT=4000\nDEVLOOP_DEFAULT_NAMESPACE=from-file\n")
    mock_get_root.return_value = tmp_path

    ctx = build_cli_context()

    assert ctx.settings.port == 4000
    assert ctx.settings.default_namespace == "from-env"


@patch("src.cli.context.get_project_root")
def test_build_cli_context_rejects_bad_settings(mock_get_root, tmp_path, monkeypatch):
    monkeypatch.setenv("DEVLOOP_PORT", "not-a-number")
    mock_get_root.return_value = tmp_path

    with pytest.raises(ConfigError):
        build_cli_context()


def test_get_cli_context_from_typer_context(cli):
    """Test that get_cli_context retrieves from Typer context."""
    typer_ctx = Mock(spec=typer.Context)
    typer_ctx.obj = cli

    assert get_cli_context(typer_ctx) is cli


def test_get_cli_context_with_invalid_obj_falls_back():
    """Test that get_cli_context falls back when ctx.obj is not CLIContext."""
    typer_ctx = Mock(spec=typer.Context)
    typer_ctx.obj = "invalid"

    with patch("src.cli.context.build_cli_context") as mock_build:
        mock_build.return_value = Mock(spec=CLIContext)

        get_cli_context(typer_ctx)

        mock_build.assert_called_once()


@patch("click.get_current_context")
def test_get_cli_context_uses_click_context_as_fallback(mock_get_click_ctx, cli):
    """Test that get_cli_context uses click context when typer ctx is None."""
    mock_click_context = Mock()
    mock_click_context.obj = cli
    mock_get_click_ctx.return_value = mock_click_context

    assert get_cli_context(None) is cli
    mock_get_click_ctx.assert_called_once_with(silent=True)


def test_devfile_path_resolves_against_project_root(cli, tmp_path):
    assert cli.devfile_path() == tmp_path / "devfile.py"
    assert cli.devfile_path(Path("other.py")) == tmp_path / "other.py"
    assert cli.devfile_path(Path("/abs/dev.py")) == Path("/abs/dev.py")


@pytest.mark.asyncio
async def test_load_config_without_devfile(cli):
    assert await cli.load_config(required=False) is None
    assert cli.store.initialized

    with pytest.raises(ConfigError):
        await cli.load_config()
