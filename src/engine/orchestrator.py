"""Reconciliation passes and teardown.

The orchestrator sequences one pass over the other engine components:
preflight, diff against the baseline, build and deploy the change set,
start live sessions, then persist and rebase.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from src.infra.k8s import KubernetesController, get_k8s_controller
from src.infra.shell_commands import CommandRunner, DockerCommands

from .build_engine import BuildEngine
from .cluster_manager import ClusterManager
from .errors import (
    ClusterUnreachable,
    ImageError,
    NothingToDo,
    PersistError,
    SyncTargetNotFound,
)
from .models import (
    BUILD_SPECS,
    MANIFEST_SPECS,
    BuildSpec,
    ChangeRecord,
    CollectionChanges,
    ManifestSpec,
    RunStep,
    SyncStep,
)
from .reconciler import Reconciler
from .settings import EngineSettings
from .state_store import StateStore
from .sync_engine import LiveSession, SyncEngine


class OrchestratorState(Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class LivePlanEntry:
    """Live steps that would be activated for one image."""

    image_name: str
    steps: list[str]


@dataclass
class UpResult:
    """Outcome of one reconciliation pass."""

    changes: list[ChangeRecord] = field(default_factory=list)
    dry_run: bool = False
    skipped: bool = False
    build_ok: bool = True
    manifest_ok: bool = True
    failed_images: list[str] = field(default_factory=list)
    failed_manifests: list[str] = field(default_factory=list)
    live_plan: list[LivePlanEntry] = field(default_factory=list)
    sessions: list[str] = field(default_factory=list)
    persisted: bool = False

    @property
    def success(self) -> bool:
        """True when both the build and the manifest category succeeded."""
        return self.build_ok and self.manifest_ok

    def changes_document(self) -> list[dict[str, Any]]:
        """Change records as JSON-compatible documents."""
        return [record.to_document() for record in self.changes]


def describe_step(step: SyncStep | RunStep) -> str:
    """One-line description of a live step."""
    match step:
        case SyncStep():
            return f"sync {step.src} -> {step.dest}"
        case RunStep():
            triggers = ", ".join(sorted(step.trigger_patterns)) or "-"
            return f"run {step.command!r} on {triggers}"


class Orchestrator:
    """Runs reconciliation passes for the registered builds and manifests.

    Managers are created from the live state at the start of each pass, so
    a changed registry, context or namespace takes effect immediately.
    """

    def __init__(
        self,
        store: StateStore,
        settings: EngineSettings | None = None,
        *,
        docker: DockerCommands | None = None,
        controller: KubernetesController | None = None,
        project_root: Path | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self.project_root = project_root or store.project_root
        self.reconciler = Reconciler()
        self.state = OrchestratorState.IDLE
        self.dev_mode = False

        runner = CommandRunner(self.project_root, default_timeout=self.settings.command_timeout)
        self._docker = docker or DockerCommands(
            runner,
            build_timeout=self.settings.build_timeout,
            push_timeout=self.settings.push_timeout,
        )
        self._controller = controller
        self._runner = runner

        self.build_engine: BuildEngine | None = None
        self.cluster: ClusterManager | None = None
        self.sync: SyncEngine | None = None

    @property
    def controller(self) -> KubernetesController:
        if self._controller is None:
            self._controller = get_k8s_controller(self.settings.k8s_backend, self._runner)
        return self._controller

    def _init_managers(self) -> tuple[BuildEngine, ClusterManager, SyncEngine]:
        state = self.store.state
        self.build_engine = BuildEngine(
            self._docker, state.registry, self.settings, project_root=self.project_root
        )
        self.cluster = ClusterManager(
            self.controller,
            state.cluster_context,
            state.namespace,
            self.settings,
            project_root=self.project_root,
        )
        if self.sync is None or self.sync.namespace != self.cluster.namespace:
            self.sync = SyncEngine(
                self.controller,
                self.cluster.namespace,
                self.settings,
                project_root=self.project_root,
            )
        return self.build_engine, self.cluster, self.sync

    # =========================================================================
    # up
    # =========================================================================

    async def up(self, *, dry_run: bool = False, dev_mode: bool = False) -> UpResult:
        """Run one reconciliation pass.

        Args:
            dry_run: Only compute and report the change set and live plan
            dev_mode: Start live sessions after a fully successful pass

        Returns:
            UpResult describing what was done

        Raises:
            NothingToDo: If no build or manifest is registered
            ClusterUnreachable: If the cluster fails the preflight check
            BuildEngineUnreachable: If the container engine is not reachable
        """
        if self.state is OrchestratorState.RUNNING:
            logger.warning("Already running, ignoring up")
            return UpResult(dry_run=dry_run, skipped=True)

        await self.store.load()
        self.state = OrchestratorState.RUNNING
        self.dev_mode = dev_mode
        keep_running = False
        try:
            result = await self._up(dry_run=dry_run, dev_mode=dev_mode)
            keep_running = dev_mode and bool(result.sessions)
            return result
        finally:
            if not keep_running:
                self.state = OrchestratorState.IDLE
                self.dev_mode = False

    async def _up(self, *, dry_run: bool, dev_mode: bool) -> UpResult:
        live_state = self.store.state
        if not live_state.build_specs and not live_state.manifest_specs:
            raise NothingToDo(
                "Nothing to do: no builds or manifests registered",
                details=f"Register resources in {self.settings.devfile}",
            )

        build_engine, cluster, sync = self._init_managers()

        if not dry_run:
            await cluster.verify_context()
            await build_engine.verify_engine()

        baseline = self.store.snapshot_baseline()
        changes = self.reconciler.diff(baseline, live_state)
        result = UpResult(
            changes=changes,
            dry_run=dry_run,
            live_plan=self.live_plan(live_state.build_specs.values()),
        )
        logger.info(f"Detected {len(changes)} change(s)")
        for record in self.reconciler.scalar_changes(changes):
            logger.info(f"{record.collection}: {record.old_value} -> {record.new_value}")

        if dry_run:
            for record in changes:
                logger.info(f"[dry-run] {record.kind.value} {'.'.join(record.path)}")
            for entry in result.live_plan:
                logger.info(
                    f"[dry-run] live updates for {entry.image_name}: {len(entry.steps)} step(s)"
                )
            return result

        build_changes = self.reconciler.build_changes(changes)
        manifest_changes = self.reconciler.manifest_changes(changes)

        result.failed_images = await self._apply_builds(build_engine, build_changes)
        result.build_ok = not result.failed_images
        result.failed_manifests = await self._apply_manifests(cluster, manifest_changes)
        result.manifest_ok = not result.failed_manifests

        if result.success and dev_mode:
            sessions = await self._start_sessions(
                sync, [spec for spec in live_state.build_specs.values() if spec.live_steps]
            )
            result.sessions = [session.image_name for session in sessions]

        if result.build_ok or result.manifest_ok:
            not_applied = {
                BUILD_SPECS: result.failed_images,
                MANIFEST_SPECS: result.failed_manifests,
            }
            try:
                await self.store.persist(exclude=not_applied)
                result.persisted = True
            except PersistError as e:
                logger.warning(f"{e.message}: {e.details}")
            self.store.rebase(exclude=not_applied)

        if result.success:
            logger.success("Reconciliation complete")
        else:
            logger.warning(
                f"Reconciliation partially failed (builds ok: {result.build_ok}, "
                f"manifests ok: {result.manifest_ok})"
            )
        return result

    def live_plan(self, specs: Any) -> list[LivePlanEntry]:
        """Live steps that a dev-mode pass would activate, per image."""
        return [
            LivePlanEntry(spec.image_name, [describe_step(step) for step in spec.live_steps])
            for spec in specs
            if spec.live_steps
        ]

    async def _apply_builds(
        self, engine: BuildEngine, changes: CollectionChanges[BuildSpec]
    ) -> list[str]:

        if changes.removed:
            await asyncio.gather(*(engine.remove(name) for name in changes.removed))

        specs = changes.to_apply
        if not specs:
            return []

        limit = self.settings.max_concurrent_builds
        semaphore = asyncio.Semaphore(limit) if limit else None

        async def _build(spec: BuildSpec) -> None:
            if semaphore is None:
                await engine.build(spec)
                return
            async with semaphore:
                await engine.build(spec)

        results = await asyncio.gather(*(_build(spec) for spec in specs), return_exceptions=True)
        failed: list[str] = []
        for spec, outcome in zip(specs, results, strict=True):
            if isinstance(outcome, ImageError):
                details = f"\n{outcome.details}" if outcome.details else ""
                logger.error(f"{outcome.message}{details}")
                failed.append(spec.image_name)
            elif isinstance(outcome, BaseException):
                logger.error(f"Build of {spec.image_name} failed: {outcome}")
                failed.append(spec.image_name)
        return failed

    async def _apply_manifests(
        self, cluster: ClusterManager, changes: CollectionChanges[ManifestSpec]
    ) -> list[str]:

        for path in changes.removed:
            await cluster.delete(path)

        failed: list[str] = []
        pending = changes.to_apply
        for index, spec in enumerate(pending):
            try:
                report = await cluster.apply(spec)
            except ClusterUnreachable as e:
                logger.error(f"{e.message}, skipping remaining manifests")
                failed.extend(s.path for s in pending[index:])
                break
            if not report.success:
                failed.append(spec.path)
        return failed

    async def _start_sessions(
        self, sync: SyncEngine, specs: list[BuildSpec]
    ) -> list[LiveSession]:
        stagger = self.settings.session_stagger

        async def _start(index: int, spec: BuildSpec) -> LiveSession | None:
            if index:
                await asyncio.sleep(stagger * index)
            session = await sync.start(spec)
            if session is not None:
                try:
                    await sync.sync_all(spec.image_name)
                except SyncTargetNotFound as e:
                    logger.warning(f"Initial sync of {spec.image_name} skipped: {e.message}")
            return session

        results = await asyncio.gather(
            *(_start(i, spec) for i, spec in enumerate(specs)), return_exceptions=True
        )
        sessions: list[LiveSession] = []
        for spec, outcome in zip(specs, results, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning(f"Could not start live updates for {spec.image_name}: {outcome}")
            elif outcome is not None:
                sessions.append(outcome)
        return sessions

    # =========================================================================
    # stop / down
    # =========================================================================

    async def stop(self) -> None:
        """Stop live sessions, keeping deployed resources."""
        if self.sync is not None:
            await self.sync.stop_all()
        self.state = OrchestratorState.IDLE
        self.dev_mode = False

    async def down(self) -> None:
        """Tear down everything registered. Never raises.

        Live sessions stop first, then manifests are deleted, then images
        removed. The orchestrator is Idle afterwards in every case.
        """
        try:
            await self._down()
        except Exception as e:
            logger.error(f"Teardown failed: {e}")
        finally:
            self.state = OrchestratorState.IDLE
            self.dev_mode = False

    async def _down(self) -> None:
        if self.sync is not None:
            try:
                await self.sync.stop_all()
            except Exception as e:
                logger.warning(f"Failed to stop live sessions: {e}")

        await self.store.load()
        state = self.store.state
        build_engine, cluster, _ = self._init_managers()

        manifest_paths = list(state.manifest_specs)
        if manifest_paths:
            try:
                await cluster.verify_context()
            except Exception as e:
                logger.warning(f"Cluster not usable, skipping manifest deletion: {e}")
            else:
                results = await asyncio.gather(
                    *(cluster.delete(path) for path in manifest_paths),
                    return_exceptions=True,
                )
                for path, outcome in zip(manifest_paths, results, strict=True):
                    if isinstance(outcome, BaseException):
                        logger.warning(f"Failed to delete {path}: {outcome}")

        image_names = list(state.build_specs)
        results = await asyncio.gather(
            *(build_engine.remove(name) for name in image_names),
            return_exceptions=True,
        )
        for name, outcome in zip(image_names, results, strict=True):
            if isinstance(outcome, BaseException):
                logger.warning(f"Failed to remove image {name}: {outcome}")

        self.store.clear_registrations()
        self.store.rebase()
        try:
            await self.store.persist()
        except PersistError as e:
            logger.warning(f"{e.message}: {e.details}")
        logger.success("Teardown complete")
