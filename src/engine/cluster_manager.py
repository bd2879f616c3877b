"""Cluster context, namespace and manifest management.

Per instance the manager moves through ``UNVERIFIED -> CONTEXT_VERIFIED
-> NAMESPACE_READY``; each check runs at most once until ``invalidate()``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from .errors import ClusterUnreachable, InvalidManifest, ReadinessTimeout
from .manifests import resolve_manifest_files, validate_yaml_file
from .models import ManifestSpec
from .namespaces import normalize_namespace

if TYPE_CHECKING:
    from src.infra.k8s.controller import KubernetesController, WorkloadRef

    from .settings import EngineSettings


class ClusterState(Enum):
    """Verification progress of a cluster manager."""

    UNVERIFIED = "unverified"
    CONTEXT_VERIFIED = "context_verified"
    NAMESPACE_READY = "namespace_ready"


@dataclass
class ApplyReport:
    """Outcome of applying one manifest spec."""

    spec_path: str
    applied: list[Path] = field(default_factory=list)
    errors: list[InvalidManifest] = field(default_factory=list)
    not_ready: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when no file failed validation or apply."""
        return not self.errors


class ClusterManager:
    """Applies and deletes manifests against one context and namespace."""

    def __init__(
        self,
        controller: KubernetesController,
        context: str,
        namespace: str,
        settings: EngineSettings,
        *,
        project_root: Path | None = None,
    ) -> None:
        self.controller = controller
        self.context = context
        self.namespace = normalize_namespace(namespace)
        self.project_root = project_root or Path.cwd()
        self._namespace_timeout = settings.namespace_ready_timeout
        self._workload_timeout = settings.workload_ready_timeout
        self.state = ClusterState.UNVERIFIED

    def invalidate(self) -> None:
        """Forget cached verification so the next call re-checks."""
        self.state = ClusterState.UNVERIFIED

    async def verify_context(self) -> None:
        """Select the declared context and check the cluster answers.

        Raises:
            ClusterUnreachable: If the context is unknown, cannot be
                selected, or the connectivity probe fails
        """
        if self.state is not ClusterState.UNVERIFIED:
            return

        contexts = await self.controller.list_contexts()
        if self.context not in contexts:
            raise ClusterUnreachable(
                f"Kubernetes context {self.context!r} not found",
                details="Known contexts: " + (", ".join(contexts) or "none"),
            )

        current = await self.controller.get_current_context()
        if current != self.context:
            logger.info(f"Switching Kubernetes context from {current} to {self.context}")

        result = await self.controller.use_context(self.context)
        if not result.success:
            raise ClusterUnreachable(
                f"Failed to switch to context {self.context!r}",
                details=result.error_output,
            )

        result = await self.controller.probe()
        if not result.success:
            raise ClusterUnreachable(
                f"Cluster for context {self.context!r} is not reachable",
                details=result.error_output,
            )

        logger.debug(f"Using Kubernetes context {self.context}")
        self.state = ClusterState.CONTEXT_VERIFIED

    async def ensure_namespace(self) -> None:
        """Make sure the target namespace exists.

        A readiness wait that times out is logged and the pass continues.

        Raises:
            ClusterUnreachable: If the context check fails or the namespace
                cannot be created
        """
        await self.verify_context()
        if self.state is ClusterState.NAMESPACE_READY:
            return

        if not await self.controller.namespace_exists(self.namespace):
            logger.info(f"Creating namespace {self.namespace}")
            result = await self.controller.create_namespace(self.namespace)
            if not result.success:
                raise ClusterUnreachable(
                    f"Failed to create namespace {self.namespace!r}",
                    details=result.error_output,
                )
            result = await self.controller.wait_for_namespace(
                self.namespace, timeout=self._namespace_timeout
            )
            if not result.success:
                logger.warning(
                    f"Namespace {self.namespace} not ready after "
                    f"{self._namespace_timeout:.0f}s, continuing"
                )

        self.state = ClusterState.NAMESPACE_READY

    def resolve(self, path: str) -> list[Path]:
        """Resolve a manifest path, directory or glob to YAML files."""
        return resolve_manifest_files(path, self.project_root)

    async def validate_file(self, path: Path) -> None:
        """Validate one manifest file locally and with a client-side dry run.

        Raises:
            InvalidManifest: If the file fails either check
        """
        local = validate_yaml_file(path)
        if not local.valid:
            raise InvalidManifest(str(path), f"Invalid manifest {path}", local.error)

        result = await self.controller.apply_manifest(path, self.namespace, dry_run=True)
        if not result.success:
            raise InvalidManifest(
                str(path), f"Manifest {path} failed validation", result.error_output
            )

    async def apply(
        self, spec: ManifestSpec, *, stop_on_first_error: bool = False
    ) -> ApplyReport:
        """Validate and apply every file of a manifest spec, in order.

        Files are applied sequentially. A file that fails is recorded and
        its siblings are still applied unless ``stop_on_first_error``.
        Workloads declared by the applied files are then awaited
        concurrently; readiness failures are warnings only.

        Args:
            spec: Manifest spec to apply
            stop_on_first_error: Raise the first InvalidManifest immediately

        Returns:
            ApplyReport listing applied and failed files

        Raises:
            ClusterUnreachable: If the cluster or namespace is not usable
            InvalidManifest: Only when stop_on_first_error is set
        """
        await self.ensure_namespace()

        report = ApplyReport(spec_path=spec.path)
        files = self.resolve(spec.path)
        if not files:
            logger.warning(f"No manifest files found for {spec.path}")
            return report

        for path in files:
            try:
                await self.validate_file(path)
                logger.info(f"Applying {path}")
                result = await self.controller.apply_manifest(path, self.namespace)
                if not result.success:
                    raise InvalidManifest(
                        str(path), f"Failed to apply {path}", result.error_output
                    )
            except InvalidManifest as e:
                logger.error(f"{e.message}: {e.details or ''}".rstrip(": "))
                if stop_on_first_error:
                    raise
                report.errors.append(e)
                continue
            report.applied.append(path)

        report.not_ready = await self._wait_for_workloads(report.applied)
        return report

    async def _wait_for_workloads(self, files: list[Path]) -> list[str]:
        workloads: list[WorkloadRef] = []
        for path in files:
            for workload in self.controller.get_workloads_from_manifest(path):
                if workload not in workloads:
                    workloads.append(workload)
        if not workloads:
            return []

        results = await asyncio.gather(
            *(
                self.controller.wait_for_ready(
                    workload, self.namespace, timeout=self._workload_timeout
                )
                for workload in workloads
            ),
            return_exceptions=True,
        )

        not_ready: list[str] = []
        for workload, result in zip(workloads, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"Readiness check for {workload.resource} failed: {result}")
                not_ready.append(workload.resource)
            elif not result.success:
                timeout = ReadinessTimeout(
                    f"{workload.resource} not ready after {self._workload_timeout:.0f}s",
                    details=result.error_output,
                )
                logger.warning(timeout.message)
                not_ready.append(workload.resource)
            else:
                logger.info(f"{workload.resource} is ready")
        return not_ready

    async def delete(self, path: str) -> None:
        """Delete the resources of a manifest path. Never raises."""
        try:
            files = self.resolve(path)
            if not files:
                logger.warning(f"No manifest files found for {path}, nothing to delete")
                return
            for file in files:
                logger.info(f"Deleting {file}")
                result = await self.controller.delete_manifest(file, self.namespace)
                if not result.success:
                    logger.warning(f"Failed to delete {file}: {result.error_output}")
        except Exception as e:
            logger.warning(f"Failed to delete {path}: {e}")
