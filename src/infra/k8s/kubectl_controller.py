"""Kubectl-based implementation of KubernetesController.

Uses kubectl subprocess calls, executed through the shared CommandRunner,
for all operations.
"""

from __future__ import annotations

import json
from pathlib import Path

from src.infra.shell_commands.runner import CommandRunner

from .controller import (
    CommandResult,
    ContainerInfo,
    KubernetesController,
    WorkloadRef,
)


class KubectlController(KubernetesController):
    """Kubernetes controller using kubectl subprocess calls.

    All methods are async; the runner executes the blocking subprocess
    calls in worker threads without blocking the event loop.
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        """Initialize the kubectl controller.

        Args:
            runner: Command runner (a runner rooted at the working directory
                    is created when omitted)
        """
        self._runner = runner or CommandRunner(Path.cwd())

    async def _run_kubectl(
        self,
        args: list[str],
        *,
        timeout: float | None = None,
        input_data: str | None = None,
    ) -> CommandResult:
        """Run a kubectl command asynchronously.

        Args:
            args: Command arguments (without 'kubectl' prefix)
            timeout: Timeout in seconds (runner default when omitted)
            input_data: Optional input to send to stdin

        Returns:
            CommandResult with execution results
        """
        return await self._runner.run(
            ["kubectl", *args], timeout=timeout, input_data=input_data
        )

    # =========================================================================
    # Cluster Context
    # =========================================================================

    async def list_contexts(self) -> list[str]:
        """List the context names known to the local kubeconfig."""
        result = await self._run_kubectl(["config", "get-contexts", "-o", "name"])
        if not result.success:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def get_current_context(self) -> str:
        """Get the current kubectl context name."""
        result = await self._run_kubectl(["config", "current-context"])
        return result.stdout.strip() if result.success else "unknown"

    async def use_context(self, context: str) -> CommandResult:
        """Switch the active kubeconfig context."""
        return await self._run_kubectl(["config", "use-context", context])

    async def probe(self) -> CommandResult:
        """Check that the API server of the active context answers."""
        return await self._run_kubectl(["cluster-info", "--request-timeout=10s"])

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        result = await self._run_kubectl(["get", "namespace", namespace])
        return result.success

    async def create_namespace(self, namespace: str) -> CommandResult:
        """Create a namespace."""
        return await self._run_kubectl(["create", "namespace", namespace])

    async def wait_for_namespace(
        self, namespace: str, *, timeout: float
    ) -> CommandResult:
        """Wait until a namespace reports the Active phase."""
        return await self._run_kubectl(
            [
                "wait",
                "--for=jsonpath={.status.phase}=Active",
                f"namespace/{namespace}",
                f"--timeout={int(timeout)}s",
            ],
            timeout=timeout + 5,
        )

    # =========================================================================
    # Manifest Operations
    # =========================================================================

    async def apply_manifest(
        self,
        manifest_path: Path,
        namespace: str,
        *,
        dry_run: bool = False,
    ) -> CommandResult:
        """Apply a Kubernetes manifest file."""
        args = ["apply", "-f", str(manifest_path), "-n", namespace]
        if dry_run:
            args.append("--dry-run=client")
        return await self._run_kubectl(args)

    async def delete_manifest(self, manifest_path: Path, namespace: str) -> CommandResult:
        """Delete the resources declared in a manifest file."""
        return await self._run_kubectl(
            [
                "delete",
                "-f",
                str(manifest_path),
                "-n",
                namespace,
                "--ignore-not-found=true",
            ]
        )

    async def wait_for_ready(
        self,
        workload: WorkloadRef,
        namespace: str,
        *,
        timeout: float,
    ) -> CommandResult:
        """Wait for a workload rollout to complete."""
        return await self._run_kubectl(
            [
                "rollout",
                "status",
                workload.resource,
                "-n",
                workload.namespace or namespace,
                f"--timeout={int(timeout)}s",
            ],
            timeout=timeout + 5,
        )

    # =========================================================================
    # Pod Operations
    # =========================================================================

    async def list_containers(self, namespace: str) -> list[ContainerInfo]:
        """List every container of every pod in a namespace."""
        result = await self._run_kubectl(["get", "pods", "-n", namespace, "-o", "json"])
        if not result.success:
            return []
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError:
            return []

        containers: list[ContainerInfo] = []
        for pod in data.get("items", []):
            name = pod.get("metadata", {}).get("name", "")
            phase = pod.get("status", {}).get("phase", "Unknown")
            for container in pod.get("spec", {}).get("containers", []):
                containers.append(
                    ContainerInfo(
                        pod=name,
                        container=container.get("name", ""),
                        image=container.get("image", ""),
                        phase=phase,
                    )
                )
        return containers

    async def exec_in_container(
        self,
        pod: str,
        container: str,
        namespace: str,
        command: str,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a shell command inside a container."""
        return await self._run_kubectl(
            ["exec", pod, "-n", namespace, "-c", container, "--", "sh", "-c", command],
            timeout=timeout,
        )

    async def copy_to_container(
        self,
        pod: str,
        container: str,
        namespace: str,
        local_path: Path,
        remote_path: str,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Copy a local file into a container."""
        return await self._run_kubectl(
            [
                "cp",
                str(local_path),
                f"{namespace}/{pod}:{remote_path}",
                "-c",
                container,
            ],
            timeout=timeout,
        )

    async def get_logs(
        self,
        pod: str,
        container: str,
        namespace: str,
        *,
        tail: int = 50,
    ) -> CommandResult:
        """Get logs from a container."""
        return await self._run_kubectl(
            ["logs", pod, "-n", namespace, "-c", container, f"--tail={tail}"]
        )
