"""Kr8s-based implementation of KubernetesController.

Uses the kr8s library for native async reads (namespaces, pods, logs)
and falls back to kubectl for apply, delete, rollout, exec and cp.
"""

from __future__ import annotations

from typing import Any

import kr8s
from kr8s.asyncio.objects import Namespace, Pod

from .controller import CommandResult, ContainerInfo
from .kubectl_controller import KubectlController


class Kr8sController(KubectlController):
    """Kubernetes controller reading cluster state through kr8s.

    A new API client is created per call: kr8s binds clients to the event
    loop that created them, and every command runs its own loop.
    """

    async def _get_api(self) -> Any:  # Returns kr8s._api.Api
        """Create a kr8s API client bound to the running event loop."""
        return await kr8s.asyncio.api()

    # =========================================================================
    # Cluster Context
    # =========================================================================

    async def probe(self) -> CommandResult:
        """Check that the API server of the active context answers."""
        try:
            api = await self._get_api()
            version = await api.version()
            return CommandResult(
                success=True, stdout=str(version.get("gitVersion", ""))
            )
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        try:
            api = await self._get_api()
            ns = await Namespace.get(namespace, api=api)
            return ns is not None
        except Exception:
            return False

    async def create_namespace(self, namespace: str) -> CommandResult:
        """Create a namespace."""
        try:
            api = await self._get_api()
            ns = await Namespace(
                {
                    "apiVersion": "v1",
                    "kind": "Namespace",
                    "metadata": {"name": namespace},
                },
                api=api,
            )
            await ns.create()
            return CommandResult(success=True, stdout=f"namespace/{namespace} created")
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)

    # =========================================================================
    # Pod Operations
    # =========================================================================

    async def list_containers(self, namespace: str) -> list[ContainerInfo]:
        """List every container of every pod in a namespace."""
        try:
            api = await self._get_api()
            result: list[ContainerInfo] = []
            async for pod in Pod.list(namespace=namespace, api=api):
                name = pod.metadata.get("name", "")
                phase = pod.status.get("phase", "Unknown")
                for container in pod.spec.get("containers", []):
                    result.append(
                        ContainerInfo(
                            pod=name,
                            container=container.get("name", ""),
                            image=container.get("image", ""),
                            phase=phase,
                        )
                    )
            return result
        except Exception:
            return []

    async def get_logs(
        self,
        pod: str,
        container: str,
        namespace: str,
        *,
        tail: int = 50,
    ) -> CommandResult:
        """Get logs from a container."""
        try:
            api = await self._get_api()
            target = await Pod.get(pod, namespace=namespace, api=api)
            lines = [
                line
                async for line in target.logs(container=container, tail_lines=tail)
            ]
            return CommandResult(success=True, stdout="\n".join(lines))
        except kr8s.NotFoundError:
            return CommandResult(
                success=False, stderr=f'pod "{pod}" not found', returncode=1
            )
        except Exception as e:
            return CommandResult(success=False, stderr=str(e), returncode=1)
