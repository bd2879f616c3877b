"""Abstract Kubernetes controller interface.

Defines the contract for cluster operations that can be implemented
by different backends (kubectl subprocess, kr8s library).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import yaml

from src.infra.shell_commands.types import CommandResult

__all__ = [
    "CommandResult",
    "ContainerInfo",
    "KubernetesController",
    "WORKLOAD_KINDS",
    "WorkloadRef",
    "image_matches",
]

# Kinds whose rollout can be awaited with `kubectl rollout status`
WORKLOAD_KINDS = ("Deployment", "StatefulSet", "DaemonSet")

# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class WorkloadRef:
    """A workload declared in a manifest file."""

    kind: str
    name: str
    namespace: str | None = None

    @property
    def resource(self) -> str:
        """Resource reference in kubectl form (e.g. ``deployment/web``)."""
        return f"{self.kind.lower()}/{self.name}"


@dataclass
class ContainerInfo:
    """A single container of a pod, flattened for image lookups."""

    pod: str
    container: str
    image: str
    phase: str = "Unknown"


def image_matches(reference: str, image_name: str) -> bool:
    """Check whether a running container image reference is the given image.

    Registry prefixes are ignored, so ``localhost:5000/app:latest`` matches
    ``app``. If ``image_name`` carries a tag, the tags must agree; otherwise
    any tag matches.

    Args:
        reference: Image reference reported by the cluster
        image_name: Image name as registered for the build

    Returns:
        True if the reference points at the image
    """
    reference = reference.split("@", 1)[0]
    ref_repo, ref_tag = _split_tag(reference)
    name_repo, name_tag = _split_tag(image_name)
    if ref_repo != name_repo and not ref_repo.endswith(f"/{name_repo}"):
        return False
    if name_tag is None:
        return True
    return (ref_tag or "latest") == name_tag


def _split_tag(reference: str) -> tuple[str, str | None]:
    last_segment = reference.rsplit("/", 1)[-1]
    if ":" in last_segment:
        repo, tag = reference.rsplit(":", 1)
        return repo, tag
    return reference, None


# =============================================================================
# Abstract Controller
# =============================================================================


class KubernetesController(ABC):
    """Abstract base class for Kubernetes operations.

    All methods are async so that long-running cluster calls are awaited
    points where independent work can proceed. Implementations report
    command failures through ``CommandResult`` rather than raising.
    """

    # =========================================================================
    # Cluster Context
    # =========================================================================

    @abstractmethod
    async def list_contexts(self) -> list[str]:
        """List the context names known to the local kubeconfig.

        Returns:
            Context names, or an empty list if kubeconfig cannot be read
        """
        ...

    @abstractmethod
    async def get_current_context(self) -> str:
        """Get the current kubectl context name.

        Returns:
            Context name, or "unknown" if detection fails
        """
        ...

    @abstractmethod
    async def use_context(self, context: str) -> CommandResult:
        """Switch the active kubeconfig context.

        Args:
            context: Context name to activate

        Returns:
            CommandResult with switch status
        """
        ...

    @abstractmethod
    async def probe(self) -> CommandResult:
        """Check that the API server of the active context answers.

        Returns:
            CommandResult with connectivity status
        """
        ...

    # =========================================================================
    # Namespace Operations
    # =========================================================================

    @abstractmethod
    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists.

        Args:
            namespace: Namespace to check

        Returns:
            True if the namespace exists, False otherwise
        """
        ...

    @abstractmethod
    async def create_namespace(self, namespace: str) -> CommandResult:
        """Create a namespace.

        Args:
            namespace: Namespace to create

        Returns:
            CommandResult with creation status
        """
        ...

    @abstractmethod
    async def wait_for_namespace(
        self, namespace: str, *, timeout: float
    ) -> CommandResult:
        """Wait until a namespace reports the Active phase.

        Args:
            namespace: Namespace to wait for
            timeout: Maximum time to wait in seconds

        Returns:
            CommandResult; ``success=False`` if the wait timed out
        """
        ...

    # =========================================================================
    # Manifest Operations
    # =========================================================================

    @abstractmethod
    async def apply_manifest(
        self,
        manifest_path: Path,
        namespace: str,
        *,
        dry_run: bool = False,
    ) -> CommandResult:
        """Apply a Kubernetes manifest file.

        Args:
            manifest_path: Path to the YAML manifest file
            namespace: Target namespace
            dry_run: Validate client-side only, without touching the cluster

        Returns:
            CommandResult with apply status
        """
        ...

    @abstractmethod
    async def delete_manifest(self, manifest_path: Path, namespace: str) -> CommandResult:
        """Delete the resources declared in a manifest file.

        Missing resources are not an error.

        Args:
            manifest_path: Path to the YAML manifest file
            namespace: Target namespace

        Returns:
            CommandResult with deletion status
        """
        ...

    def get_workloads_from_manifest(self, manifest_path: Path) -> list[WorkloadRef]:
        """Discover the workloads declared in a manifest file.

        The file is parsed locally; unreadable files yield no workloads.

        Args:
            manifest_path: Path to the YAML manifest file

        Returns:
            Workloads of a kind in WORKLOAD_KINDS, in document order
        """
        try:
            documents = list(yaml.safe_load_all(manifest_path.read_text()))
        except (OSError, yaml.YAMLError):
            return []

        workloads: list[WorkloadRef] = []
        for doc in documents:
            if not isinstance(doc, dict):
                continue
            items = doc.get("items") if doc.get("kind") == "List" else [doc]
            for item in items or []:
                if not isinstance(item, dict) or item.get("kind") not in WORKLOAD_KINDS:
                    continue
                metadata = item.get("metadata") or {}
                if name := metadata.get("name"):
                    workloads.append(
                        WorkloadRef(
                            kind=item["kind"],
                            name=name,
                            namespace=metadata.get("namespace"),
                        )
                    )
        return workloads

    @abstractmethod
    async def wait_for_ready(
        self,
        workload: WorkloadRef,
        namespace: str,
        *,
        timeout: float,
    ) -> CommandResult:
        """Wait for a workload rollout to complete.

        Args:
            workload: Workload to wait for
            namespace: Namespace used when the workload does not declare one
            timeout: Maximum time to wait in seconds

        Returns:
            CommandResult; ``success=False`` if not ready within the timeout
        """
        ...

    # =========================================================================
    # Pod Operations
    # =========================================================================

    @abstractmethod
    async def list_containers(self, namespace: str) -> list[ContainerInfo]:
        """List every container of every pod in a namespace.

        Args:
            namespace: Kubernetes namespace

        Returns:
            One ContainerInfo per (pod, container) pair
        """
        ...

    async def list_pods_for_image(
        self, image_name: str, namespace: str
    ) -> list[ContainerInfo]:
        """List the containers in a namespace running the given image.

        Args:
            image_name: Image name as registered for the build
            namespace: Kubernetes namespace

        Returns:
            Matching containers, in listing order
        """
        return [
            info
            for info in await self.list_containers(namespace)
            if image_matches(info.image, image_name)
        ]

    @abstractmethod
    async def exec_in_container(
        self,
        pod: str,
        container: str,
        namespace: str,
        command: str,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a shell command inside a container.

        Args:
            pod: Pod name
            container: Container name
            namespace: Kubernetes namespace
            command: Command line passed to ``sh -c``
            timeout: Maximum time to wait in seconds

        Returns:
            CommandResult with the command output
        """
        ...

    @abstractmethod
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
        """Copy a local file into a container.

        Args:
            pod: Pod name
            container: Container name
            namespace: Kubernetes namespace
            local_path: File to copy
            remote_path: Absolute destination path inside the container
            timeout: Maximum time to wait in seconds

        Returns:
            CommandResult with copy status
        """
        ...

    @abstractmethod
    async def get_logs(
        self,
        pod: str,
        container: str,
        namespace: str,
        *,
        tail: int = 50,
    ) -> CommandResult:
        """Get logs from a container.

        Args:
            pod: Pod name
            container: Container name
            namespace: Kubernetes namespace
            tail: Number of lines to show from the end

        Returns:
            CommandResult with logs in stdout
        """
        ...
