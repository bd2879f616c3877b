"""Unit tests for the Kubernetes controllers."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.infra.k8s import KubectlController, WorkloadRef, get_k8s_controller, image_matches
from src.infra.k8s.kr8s_controller import Kr8sController
from src.infra.shell_commands import CommandRunner
from tests.helpers import failed, ok


@pytest.fixture
def runner() -> MagicMock:
    mock = MagicMock(spec=CommandRunner)
    mock.run = AsyncMock(return_value=ok())
    return mock


@pytest.fixture
def kubectl(runner: MagicMock) -> KubectlController:
    return KubectlController(runner)


def _args(runner: MagicMock) -> list[str]:
    return runner.run.await_args.args[0]


class TestImageMatches:
    @pytest.mark.parametrize(
        ("reference", "image"),
        [
            ("app", "app"),
            ("app:latest", "app"),
            ("localhost:5000/app", "app"),
            ("localhost:5000/app:latest", "app:latest"),
            ("localhost:5000/team/app:v2", "team/app:v2"),
            ("localhost:5000/app@sha256:abc", "app"),
            ("localhost:5000/app", "app:latest"),
        ],
    )
    def test_matches(self, reference: str, image: str) -> None:
        assert image_matches(reference, image)

    @pytest.mark.parametrize(
        ("reference", "image"),
        [
            ("localhost:5000/myapp", "app"),
            ("localhost:5000/app:v1", "app:v2"),
            ("app-worker", "app"),
        ],
    )
    def test_does_not_match(self, reference: str, image: str) -> None:
        assert not image_matches(reference, image)


class TestWorkloadDiscovery:
    def test_workloads_from_multi_document_file(
        self, kubectl: KubectlController, tmp_path: Path
    ) -> None:
        manifest = tmp_path / "app.yaml"
        manifest.write_text(
            "apiVersion: apps/v1\nkind: Deployment\nmetadata:\n  name: web\n"
            "---\n"
            "apiVersion: v1\nkind: Service\nmetadata:\n  name: web\n"
            "---\n"
            "apiVersion: v1\nkind: List\nitems:\n"
            "  - apiVersion: apps/v1\n    kind: StatefulSet\n"
            "    metadata:\n      name: db\n      namespace: data\n"
        )

        workloads = kubectl.get_workloads_from_manifest(manifest)

        assert workloads == [
            WorkloadRef("Deployment", "web"),
            WorkloadRef("StatefulSet", "db", "data"),
        ]
        assert workloads[1].resource == "statefulset/db"

    def test_unreadable_file_has_no_workloads(
        self, kubectl: KubectlController, tmp_path: Path
    ) -> None:
        assert kubectl.get_workloads_from_manifest(tmp_path / "missing.yaml") == []


class TestKubectlController:
    @pytest.mark.asyncio
    async def test_list_contexts(self, kubectl: KubectlController, runner: MagicMock) -> None:
        runner.run.return_value = ok("k3d-local-dev\nminikube\n\n")

        assert await kubectl.list_contexts() == ["k3d-local-dev", "minikube"]
        assert _args(runner) == ["kubectl", "config", "get-contexts", "-o", "name"]

    @pytest.mark.asyncio
    async def test_list_contexts_failure(
        self, kubectl: KubectlController, runner: MagicMock
    ) -> None:
        runner.run.return_value = failed()

        assert await kubectl.list_contexts() == []

    @pytest.mark.asyncio
    async def test_apply_dry_run(self, kubectl: KubectlController, runner: MagicMock) -> None:
        await kubectl.apply_manifest(Path("k8s/app.yaml"), "dev", dry_run=True)

        assert _args(runner) == [
            "kubectl", "apply", "-f", "k8s/app.yaml", "-n", "dev", "--dry-run=client",
        ]  # fmt: skip

    @pytest.mark.asyncio
    async def test_delete_ignores_missing(
        self, kubectl: KubectlController, runner: MagicMock
    ) -> None:
        await kubectl.delete_manifest(Path("app.yaml"), "dev")

        assert "--ignore-not-found=true" in _args(runner)

    @pytest.mark.asyncio
    async def test_wait_for_ready_uses_workload_namespace(
        self, kubectl: KubectlController, runner: MagicMock
    ) -> None:
        await kubectl.wait_for_ready(WorkloadRef("Deployment", "web", "other"), "dev", timeout=30)

        assert _args(runner) == [
            "kubectl", "rollout", "status", "deployment/web", "-n", "other", "--timeout=30s",
        ]  # fmt: skip
        assert runner.run.await_args.kwargs["timeout"] == 35

    @pytest.mark.asyncio
    async def test_list_pods_for_image(
        self, kubectl: KubectlController, runner: MagicMock
    ) -> None:
        runner.run.return_value = ok(
            json.dumps(
                {
                    "items": [
                        {
                            "metadata": {"name": "app-1"},
                            "status": {"phase": "Running"},
                            "spec": {
                                "containers": [
                                    {"name": "app", "image": "localhost:5000/app:latest"},
                                    {"name": "proxy", "image": "envoy:v1"},
                                ]
                            },
                        },
                        {
                            "metadata": {"name": "other-1"},
                            "status": {"phase": "Running"},
                            "spec": {"containers": [{"name": "x", "image": "other"}]},
                        },
                    ]
                }
            )
        )

        matches = await kubectl.list_pods_for_image("app", "dev")

        assert [(m.pod, m.container, m.phase) for m in matches] == [("app-1", "app", "Running")]

    @pytest.mark.asyncio
    async def test_exec_copy_and_logs(
        self, kubectl: KubectlController, runner: MagicMock
    ) -> None:
        await kubectl.exec_in_container("app-1", "app", "dev", "npm ci", timeout=60)
        await kubectl.copy_to_container("app-1", "app", "dev", Path("/p/src/a.js"), "/app/src/a.js")
        await kubectl.get_logs("app-1", "app", "dev", tail=20)

        calls = [c.args[0] for c in runner.run.await_args_list]
        assert calls == [
            ["kubectl", "exec", "app-1", "-n", "dev", "-c", "app", "--", "sh", "-c", "npm ci"],
            ["kubectl", "cp", "/p/src/a.js", "dev/app-1:/app/src/a.js", "-c", "app"],
            ["kubectl", "logs", "app-1", "-n", "dev", "-c", "app", "--tail=20"],
        ]


class TestControllerFactory:
    def test_backends(self) -> None:
        assert type(get_k8s_controller("kubectl")) is KubectlController
        assert type(get_k8s_controller("kr8s")) is Kr8sController

    def test_instances_are_cached(self) -> None:
        assert get_k8s_controller("kubectl") is get_k8s_controller("kubectl")

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            get_k8s_controller("helm")
