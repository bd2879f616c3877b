"""Unit tests for the cluster manager."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.engine.cluster_manager import ClusterManager, ClusterState
from src.engine.errors import ClusterUnreachable, InvalidManifest
from src.engine.models import ManifestSpec
from src.engine.settings import EngineSettings
from src.infra.k8s.controller import WorkloadRef
from tests.helpers import failed, ok, write_manifest


@pytest.fixture
def cluster(controller: MagicMock, settings: EngineSettings, tmp_path: Path) -> ClusterManager:
    return ClusterManager(controller, "k3d-local-dev", "Dev_Space", settings, project_root=tmp_path)


class TestVerification:
    def test_namespace_is_normalized(self, cluster: ClusterManager) -> None:
        assert cluster.namespace == "dev-space"

    @pytest.mark.asyncio
    async def test_verify_context_runs_once(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        await cluster.verify_context()
        await cluster.verify_context()

        controller.use_context.assert_awaited_once_with("k3d-local-dev")
        controller.probe.assert_awaited_once()
        assert cluster.state is ClusterState.CONTEXT_VERIFIED

    @pytest.mark.asyncio
    async def test_switches_away_from_another_current_context(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        controller.get_current_context.return_value = "prod-cluster"

        await cluster.verify_context()

        controller.get_current_context.assert_awaited_once()
        controller.use_context.assert_awaited_once_with("k3d-local-dev")

    @pytest.mark.asyncio
    async def test_invalidate_forces_recheck(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        await cluster.verify_context()
        cluster.invalidate()
        await cluster.verify_context()

        assert controller.probe.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_context(self, cluster: ClusterManager, controller: MagicMock) -> None:
        controller.list_contexts.return_value = ["minikube"]

        with pytest.raises(ClusterUnreachable) as excinfo:
            await cluster.verify_context()

        assert "minikube" in (excinfo.value.details or "")
        controller.use_context.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_probe(self, cluster: ClusterManager, controller: MagicMock) -> None:
        controller.probe.return_value = failed("connection refused")

        with pytest.raises(ClusterUnreachable):
            await cluster.verify_context()

        assert cluster.state is ClusterState.UNVERIFIED

    @pytest.mark.asyncio
    async def test_existing_namespace_is_not_created(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        await cluster.ensure_namespace()

        controller.create_namespace.assert_not_awaited()
        assert cluster.state is ClusterState.NAMESPACE_READY

    @pytest.mark.asyncio
    async def test_missing_namespace_is_created_and_awaited(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        controller.namespace_exists.return_value = False

        await cluster.ensure_namespace()

        controller.create_namespace.assert_awaited_once_with("dev-space")
        controller.wait_for_namespace.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_namespace_wait_timeout_is_only_a_warning(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        controller.namespace_exists.return_value = False
        controller.wait_for_namespace.return_value = failed("timed out")

        await cluster.ensure_namespace()

        assert cluster.state is ClusterState.NAMESPACE_READY

    @pytest.mark.asyncio
    async def test_namespace_creation_failure(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        controller.namespace_exists.return_value = False
        controller.create_namespace.return_value = failed("forbidden")

        with pytest.raises(ClusterUnreachable):
            await cluster.ensure_namespace()


class TestApply:
    @pytest.mark.asyncio
    async def test_directory_files_applied_in_sorted_order(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        b = write_manifest(tmp_path / "k8s" / "b.yaml")
        a = write_manifest(tmp_path / "k8s" / "nested" / "a.yaml")
        (tmp_path / "k8s" / "README.md").write_text("docs")

        report = await cluster.apply(ManifestSpec(path="k8s"))

        applied = [
            c.args[0] for c in controller.apply_manifest.await_args_list if not c.kwargs.get("dry_run")
        ]
        assert applied == sorted([a, b])
        assert report.applied == sorted([a, b])
        assert report.success

    @pytest.mark.asyncio
    async def test_each_file_is_dry_run_first(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        path = write_manifest(tmp_path / "app.yaml")

        await cluster.apply(ManifestSpec(path="app.yaml"))

        calls = controller.apply_manifest.await_args_list
        assert [c.kwargs.get("dry_run", False) for c in calls] == [True, False]
        assert all(c.args[:2] == (path, "dev-space") for c in calls)

    @pytest.mark.asyncio
    async def test_empty_resolution_is_a_warning(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        report = await cluster.apply(ManifestSpec(path="missing/*.yaml"))

        assert report.success
        assert report.applied == []
        controller.apply_manifest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_file_does_not_abort_siblings(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        (tmp_path / "k8s").mkdir()
        (tmp_path / "k8s" / "a.yaml").write_text("kind: Deployment\n")
        good = write_manifest(tmp_path / "k8s" / "b.yaml")

        report = await cluster.apply(ManifestSpec(path="k8s"))

        assert not report.success
        assert [e.path for e in report.errors] == [str(tmp_path / "k8s" / "a.yaml")]
        assert report.applied == [good]

    @pytest.mark.asyncio
    async def test_stop_on_first_error(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        write_manifest(tmp_path / "k8s" / "a.yaml")
        write_manifest(tmp_path / "k8s" / "b.yaml")
        controller.apply_manifest.return_value = failed("admission denied")

        with pytest.raises(InvalidManifest):
            await cluster.apply(ManifestSpec(path="k8s"), stop_on_first_error=True)

        assert controller.apply_manifest.await_count == 1

    @pytest.mark.asyncio
    async def test_unreachable_cluster_aborts_before_apply(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        write_manifest(tmp_path / "app.yaml")
        controller.probe.return_value = failed()

        with pytest.raises(ClusterUnreachable):
            await cluster.apply(ManifestSpec(path="app.yaml"))

        controller.apply_manifest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_workload_readiness_failures_are_warnings(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        write_manifest(tmp_path / "app.yaml")
        web = WorkloadRef("Deployment", "web")
        db = WorkloadRef("StatefulSet", "db")
        controller.get_workloads_from_manifest.return_value = [web, db]
        controller.wait_for_ready.side_effect = [ok(), RuntimeError("watch broke")]

        report = await cluster.apply(ManifestSpec(path="app.yaml"))

        assert report.success
        assert report.not_ready == ["statefulset/db"]
        assert controller.wait_for_ready.await_count == 2


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_swallows_failures(
        self, cluster: ClusterManager, controller: MagicMock, tmp_path: Path
    ) -> None:
        write_manifest(tmp_path / "app.yaml")
        controller.delete_manifest.side_effect = RuntimeError("api down")

        await cluster.delete("app.yaml")

        controller.delete_manifest.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_of_missing_path_is_a_no_op(
        self, cluster: ClusterManager, controller: MagicMock
    ) -> None:
        await cluster.delete("gone.yaml")

        controller.delete_manifest.assert_not_awaited()
