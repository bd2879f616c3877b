"""Shared fixtures for unit tests.

Collaborators (container engine, Kubernetes controller) are mocks; every
timing knob of the engine is set to zero so retry and debounce paths run
without sleeping.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.engine.models import DesiredState
from src.engine.settings import EngineSettings
from src.engine.state_store import StateStore
from src.infra.k8s.controller import KubernetesController
from src.infra.shell_commands import DockerCommands
from tests.helpers import ok


@pytest.fixture
def settings(tmp_path: Path) -> EngineSettings:
    """Engine settings with zero delays and a state dir under tmp_path."""
    return EngineSettings(
        state_dir=tmp_path / ".devloop",
        push_backoff_base=0.0,
        sync_debounce=0.01,
        session_stagger=0.0,
        namespace_ready_timeout=1.0,
        workload_ready_timeout=1.0,
    )


@pytest.fixture
def defaults() -> DesiredState:
    return DesiredState(
        registry="localhost:5000",
        cluster_context="k3d-local-dev",
        namespace="dev",
    )


@pytest.fixture
def store(tmp_path: Path, settings: EngineSettings) -> StateStore:
    """A state store rooted at tmp_path (not yet loaded)."""
    return StateStore.from_settings(settings, tmp_path)


@pytest.fixture
def docker() -> MagicMock:
    """Container engine mock where every operation succeeds."""
    mock = MagicMock(spec=DockerCommands)
    mock.info = AsyncMock(return_value=ok("27.0.1"))
    mock.build = AsyncMock(return_value=ok())
    mock.image_exists = AsyncMock(return_value=True)
    mock.tag_image = AsyncMock(return_value=ok())
    mock.push_image = AsyncMock(return_value=ok())
    mock.remove_image = AsyncMock(return_value=ok())
    return mock


@pytest.fixture
def controller() -> MagicMock:
    """Kubernetes controller mock for a healthy cluster with one context."""
    mock = MagicMock(spec=KubernetesController)
    mock.list_contexts = AsyncMock(return_value=["k3d-local-dev"])
    mock.get_current_context = AsyncMock(return_value="k3d-local-dev")
    mock.use_context = AsyncMock(return_value=ok())
    mock.probe = AsyncMock(return_value=ok())
    mock.namespace_exists = AsyncMock(return_value=True)
    mock.create_namespace = AsyncMock(return_value=ok())
    mock.wait_for_namespace = AsyncMock(return_value=ok())
    mock.apply_manifest = AsyncMock(return_value=ok())
    mock.delete_manifest = AsyncMock(return_value=ok())
    mock.get_workloads_from_manifest = MagicMock(return_value=[])
    mock.wait_for_ready = AsyncMock(return_value=ok())
    mock.list_pods_for_image = AsyncMock(return_value=[])
    mock.exec_in_container = AsyncMock(return_value=ok())
    mock.copy_to_container = AsyncMock(return_value=ok())
    mock.get_logs = AsyncMock(return_value=ok("log line\n"))
    return mock

