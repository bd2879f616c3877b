"""Live file sync into running containers.

Each live session owns a watchdog observer. Observer threads hand raw
events to the event loop through ``call_soon_threadsafe``; a bounded queue
feeds one consumer task per session which coalesces events until the
file system has been quiet for the debounce window, then dispatches every
changed path through the build's live steps in declaration order.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, assert_never

from loguru import logger
from watchdog.events import (
    EVENT_TYPE_CLOSED,
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .errors import DevLoopError, SyncTargetNotFound
from .models import BuildSpec, RunStep, SyncStep
from .patterns import (
    DEFAULT_IGNORES,
    is_ignored,
    matches_any,
    matches_pattern,
    step_patterns,
    sync_destination,
    watch_roots,
)

if TYPE_CHECKING:
    from src.infra.k8s.controller import ContainerInfo, KubernetesController

    from .settings import EngineSettings

_HANDLED_EVENTS = frozenset(
    {
        EVENT_TYPE_CREATED,
        EVENT_TYPE_MODIFIED,
        EVENT_TYPE_DELETED,
        EVENT_TYPE_MOVED,
        EVENT_TYPE_CLOSED,
    }
)


@dataclass
class LiveSession:
    """An active live-update session for one image."""

    image_name: str
    pod: str
    container: str
    namespace: str
    context: Path
    spec: BuildSpec
    roots: list[Path] = field(default_factory=list)
    active: bool = True
    queue: asyncio.Queue[tuple[str, bool]] = field(default_factory=asyncio.Queue)
    observer: Any = None
    task: asyncio.Task[None] | None = None
    dropped_events: int = 0

    @property
    def ignore_patterns(self) -> tuple[str, ...]:
        """Default ignores followed by the build's own ignore patterns."""
        declared = self.spec.hot_reload.ignore_patterns if self.spec.hot_reload else ()
        return (*DEFAULT_IGNORES, *sorted(declared))

    def to_row(self) -> dict[str, Any]:
        """Status row for operator output."""
        return {
            "image": self.image_name,
            "pod": self.pod,
            "container": self.container,
            "namespace": self.namespace,
            "active": self.active,
            "watching": [str(root) for root in self.roots],
        }


class _ChangeHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        enqueue: Callable[[str, bool], None],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._enqueue = enqueue

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _HANDLED_EVENTS:
            return
        if event.event_type == EVENT_TYPE_MOVED:
            self._post(os.fsdecode(event.src_path), True)
            self._post(os.fsdecode(event.dest_path), False)
        else:
            self._post(
                os.fsdecode(event.src_path), event.event_type == EVENT_TYPE_DELETED
            )

    def _post(self, path: str, deleted: bool) -> None:
        try:
            self._loop.call_soon_threadsafe(self._enqueue, path, deleted)
        except RuntimeError:
            # Loop already closed during shutdown
            pass


class SyncEngine:
    """Manages live sessions and applies file changes to containers."""

    def __init__(
        self,
        controller: KubernetesController,
        namespace: str,
        settings: EngineSettings,
        *,
        project_root: Path | None = None,
        observer_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.controller = controller
        self.namespace = namespace
        self.project_root = project_root or Path.cwd()
        self._debounce = settings.sync_debounce
        self._queue_size = settings.sync_queue_size
        self._exec_timeout = settings.exec_timeout
        self._observer_factory = observer_factory or Observer
        self._sessions: dict[str, LiveSession] = {}

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def context_dir(self, spec: BuildSpec) -> Path:
        """Absolute build context directory of a build."""
        context = Path(spec.build_context.context)
        if not context.is_absolute():
            context = self.project_root / context
        return context.resolve()

    async def find_target(self, image_name: str) -> ContainerInfo | None:
        """First running container whose image matches, if any."""
        for info in await self.controller.list_pods_for_image(image_name, self.namespace):
            if info.phase == "Running":
                return info
        return None

    async def start(self, spec: BuildSpec) -> LiveSession | None:
        """Start (or restart) live updates for a build.

        Args:
            spec: Build with declared live steps

        Returns:
            The new session, or None when the build has no live steps or
            no running container was found for its image
        """
        if not spec.live_steps:
            logger.debug(f"{spec.image_name} has no live steps")
            return None

        if spec.image_name in self._sessions:
            await self.stop(spec.image_name)

        target = await self.find_target(spec.image_name)
        if target is None:
            warning = SyncTargetNotFound(
                f"No running container for {spec.image_name} in namespace {self.namespace}"
            )
            logger.warning(f"{warning.message}, live updates disabled")
            return None

        context = self.context_dir(spec)
        roots = watch_roots(context, step_patterns(spec.live_steps))
        if not roots:
            logger.warning(f"Nothing to watch for {spec.image_name}, live updates disabled")
            return None

        session = LiveSession(
            image_name=spec.image_name,
            pod=target.pod,
            container=target.container,
            namespace=self.namespace,
            context=context,
            spec=spec,
            roots=roots,
            queue=asyncio.Queue(maxsize=self._queue_size),
        )

        loop = asyncio.get_running_loop()
        handler = _ChangeHandler(loop, lambda path, deleted: self._enqueue(session, path, deleted))
        observer = self._observer_factory()
        for root in session.roots:
            observer.schedule(handler, str(root), recursive=True)
        observer.start()
        session.observer = observer
        session.task = asyncio.create_task(
            self._consume(session), name=f"live-sync:{spec.image_name}"
        )

        self._sessions[spec.image_name] = session
        logger.info(
            f"Live updates for {spec.image_name} -> {target.pod}/{target.container}, "
            f"watching {', '.join(str(r) for r in session.roots)}"
        )
        return session

    async def stop(self, image_name: str) -> None:
        """Stop the session of an image and discard it."""
        session = self._sessions.pop(image_name, None)
        if session is None:
            return

        session.active = False
        try:
            if session.observer is not None:
                session.observer.stop()
                await asyncio.to_thread(session.observer.join, 5)
        finally:
            if session.task is not None:
                session.task.cancel()
                try:
                    await session.task
                except asyncio.CancelledError:
                    pass
        logger.debug(f"Stopped live updates for {image_name}")

    async def stop_all(self) -> None:
        """Stop every session, tolerating individual failures."""
        names = list(self._sessions)
        results = await asyncio.gather(
            *(self.stop(name) for name in names), return_exceptions=True
        )
        for name, result in zip(names, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"Failed to stop live updates for {name}: {result}")
                self._sessions.pop(name, None)

    def sessions(self) -> list[dict[str, Any]]:
        """Status rows of all sessions."""
        return [session.to_row() for session in self._sessions.values()]

    def get_session(self, image_name: str) -> LiveSession | None:
        return self._sessions.get(image_name)

    # =========================================================================
    # Event pipeline
    # =========================================================================

    def _enqueue(self, session: LiveSession, path: str, deleted: bool) -> None:
        if not session.active:
            return
        try:
            session.queue.put_nowait((path, deleted))
        except asyncio.QueueFull:
            session.dropped_events += 1
            logger.warning(f"Change queue for {session.image_name} full, dropping {path}")

    async def _consume(self, session: LiveSession) -> None:
        queue = session.queue
        while True:
            path, deleted = await queue.get()
            pending = {path: deleted}
            while True:
                try:
                    path, deleted = await asyncio.wait_for(queue.get(), self._debounce)
                except TimeoutError:
                    break
                pending[path] = deleted

            if not session.active:
                continue
            for path, deleted in pending.items():
                relative = self._relative(session, path)
                if relative is None:
                    continue
                try:
                    await self.handle_change(session, relative, deleted=deleted)
                except Exception as e:
                    logger.error(f"Error handling change of {relative}: {e}")

    def _relative(self, session: LiveSession, path: str) -> str | None:
        try:
            relative = Path(path).resolve().relative_to(session.context).as_posix()
        except ValueError:
            return None
        if is_ignored(relative, session.ignore_patterns):
            return None
        return relative

    async def handle_change(
        self, session: LiveSession, relative_path: str, *, deleted: bool = False
    ) -> None:
        """Apply the live steps of a session to one changed path.

        Steps run in declaration order. Sync steps copy the file into the
        container (skipped for deleted files); run steps execute their
        command when a trigger matches. A failing step is logged and the
        remaining steps still run.

        Args:
            session: Active live session
            relative_path: Changed path relative to the build context
            deleted: Whether the file was removed
        """
        if not session.active:
            return

        for step in session.spec.live_steps:
            match step:
                case SyncStep():
                    if deleted or not matches_pattern(relative_path, step.src):
                        continue
                    await self._sync_file(session, step, relative_path)
                case RunStep():
                    if not matches_any(relative_path, step.trigger_patterns):
                        continue
                    await self._run_command(session, step)
                case _:
                    assert_never(step)

    async def _sync_file(self, session: LiveSession, step: SyncStep, relative_path: str) -> bool:
        target = sync_destination(step.src, relative_path, step.dest)
        result = await self.controller.copy_to_container(
            session.pod,
            session.container,
            session.namespace,
            session.context / relative_path,
            target,
            timeout=self._exec_timeout,
        )
        if result.success:
            logger.info(f"Synced {relative_path} -> {target}")
        else:
            logger.error(f"Failed to sync {relative_path}: {result.error_output}")
        return result.success

    async def _run_command(self, session: LiveSession, step: RunStep) -> None:
        logger.info(f"Running in {session.pod}: {step.command}")
        result = await self.controller.exec_in_container(
            session.pod,
            session.container,
            session.namespace,
            step.command,
            timeout=self._exec_timeout,
        )
        if result.success:
            if result.stdout.strip():
                logger.debug(result.stdout.strip())
        else:
            logger.error(f"Command failed in {session.pod}: {result.error_output}")

    # =========================================================================
    # Manual operations
    # =========================================================================

    async def sync_all(self, image_name: str) -> int:
        """Copy every file matching a sync source of an active session.

        Returns:
            Number of files copied successfully

        Raises:
            SyncTargetNotFound: If the image has no active session
        """
        session = self.get_session(image_name)
        if session is None or not session.active:
            raise SyncTargetNotFound(f"No active live session for {image_name}")

        files = await asyncio.to_thread(
            lambda: sorted(p for p in session.context.rglob("*") if p.is_file())
        )
        copied = 0
        for path in files:
            relative = path.relative_to(session.context).as_posix()
            if is_ignored(relative, session.ignore_patterns):
                continue
            for step in session.spec.live_steps:
                if isinstance(step, SyncStep) and matches_pattern(relative, step.src):
                    copied += await self._sync_file(session, step, relative)
        logger.info(f"Full sync of {image_name}: {copied} file(s) copied")
        return copied

    async def get_logs(self, image_name: str, tail: int = 50) -> str:
        """Recent logs of the container serving an image.

        Uses the session target when one is active, otherwise looks up a
        running container for the image.

        Raises:
            SyncTargetNotFound: If no running container serves the image
            DevLoopError: If the logs cannot be fetched
        """
        session = self.get_session(image_name)
        if session is not None:
            pod, container = session.pod, session.container
        else:
            target = await self.find_target(image_name)
            if target is None:
                raise SyncTargetNotFound(
                    f"No running container for {image_name} in namespace {self.namespace}"
                )
            pod, container = target.pod, target.container

        result = await self.controller.get_logs(pod, container, self.namespace, tail=tail)
        if not result.success:
            raise DevLoopError(f"Failed to fetch logs for {image_name}", result.error_output)
        return result.stdout
