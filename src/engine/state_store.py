"""Desired-state store.

The store owns the live desired state and its baseline twin. Its
lifecycle is explicit: construct, ``await load()``, then accept
registrations. The baseline is the "old" side of every diff and only
moves forward on ``rebase()``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .errors import ConfigError, PersistError
from .manifests import is_glob_pattern, is_yaml_file, resolve_manifest_files
from .models import (
    BUILD_SPECS,
    MANIFEST_SPECS,
    BuildContext,
    BuildSpec,
    DesiredState,
    HotReload,
    ManifestSpec,
)
from .namespaces import normalize_namespace
from .settings import EngineSettings

_COLLECTION_FIELDS = {BUILD_SPECS: "build_specs", MANIFEST_SPECS: "manifest_specs"}


class StateStore:
    """Owns the desired-state document, its persistence and its baseline."""

    def __init__(
        self,
        state_file: Path,
        defaults: DesiredState,
        *,
        project_root: Path | None = None,
    ) -> None:
        """Initialize the store with default state.

        Args:
            state_file: JSON file the state is persisted to
            defaults: State used when nothing (valid) is persisted
            project_root: Directory manifest patterns are resolved against
        """
        self.state_file = state_file
        self.project_root = project_root or Path.cwd()
        self._defaults = defaults.model_copy(deep=True)
        self._state = defaults.model_copy(deep=True)
        self._state.namespace = normalize_namespace(self._state.namespace)
        self._baseline = self._state.model_copy(deep=True)
        self._initialized = False
        self._load_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls, settings: EngineSettings, project_root: Path | None = None
    ) -> StateStore:
        """Create a store with defaults and state file taken from settings."""
        root = project_root or Path.cwd()
        state_file = settings.state_file
        if not state_file.is_absolute():
            state_file = root / state_file
        defaults = DesiredState(
            registry=settings.default_registry,
            cluster_context=settings.default_context,
            namespace=settings.default_namespace,
        )
        return cls(state_file, defaults, project_root=root)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def initialized(self) -> bool:
        """Whether load() has completed."""
        return self._initialized

    async def load(self) -> None:
        """Load persisted state, once.

        Concurrent callers await the same in-flight load. A missing, corrupt
        or unreadable file leaves the defaults in place.
        """
        if self._initialized:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        await self._load_task

    async def _load(self) -> None:
        state = await asyncio.to_thread(self._read_persisted)
        state.namespace = normalize_namespace(state.namespace)
        self._state = state
        self._baseline = state.model_copy(deep=True)
        self._initialized = True
        logger.debug(f"Loaded state from {self.state_file}")

    def _read_persisted(self) -> DesiredState:
        if not self.state_file.exists():
            return self._defaults.model_copy(deep=True)

        try:
            loaded = json.loads(self.state_file.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("top-level JSON value is not an object")
            document = self._defaults.to_document()
            document.update(loaded)
            return DesiredState.model_validate(document)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                f"Failed to read state file {self.state_file}, using defaults: {e}"
            )
            return self._defaults.model_copy(deep=True)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ConfigError(
                "State store is not initialized",
                details="Await StateStore.load() before registering resources.",
            )

    # =========================================================================
    # Registration
    # =========================================================================

    def register_build(
        self,
        image_name: str,
        build_context: BuildContext | Mapping[str, Any] | None = None,
        hot_reload: HotReload | Mapping[str, Any] | None = None,
    ) -> BuildSpec:
        """Register (or replace) an image build.

        Paths are not checked here; the build engine validates them at build
        time.

        Args:
            image_name: Image name, the key of the build
            build_context: Context directory, Dockerfile and build args
            hot_reload: Ignore patterns and live steps

        Returns:
            The registered BuildSpec

        Raises:
            ConfigError: If the input does not form a valid build spec
        """
        self._require_initialized()
        try:
            spec = BuildSpec.model_validate(
                {
                    "image_name": image_name,
                    "build_context": build_context or BuildContext(),
                    "hot_reload": hot_reload,
                }
            )
        except ValidationError as e:
            raise ConfigError(
                f"Invalid build registration for {image_name!r}", details=str(e)
            ) from e

        self._state.build_specs[spec.image_name] = spec
        logger.debug(f"Registered build {spec.image_name}")
        return spec

    def register_manifest(self, path_or_patterns: str | Sequence[str]) -> list[str]:
        """Register one or more manifest paths.

        Glob patterns are expanded to the YAML files they match now; plain
        paths are kept as given (directories are expanded at apply time).
        Non-matching patterns and non-YAML files are dropped with a warning.

        Args:
            path_or_patterns: A path or glob, or a list of them

        Returns:
            Keys registered by this call (possibly empty)

        Raises:
            ConfigError: If an entry is not a non-empty string
        """
        self._require_initialized()
        if isinstance(path_or_patterns, str):
            entries = [path_or_patterns]
        else:
            entries = list(path_or_patterns)

        keys: list[str] = []
        for entry in entries:
            if not isinstance(entry, str) or not entry.strip():
                raise ConfigError(f"Invalid manifest registration: {entry!r}")
            for key in self._expand_manifest_entry(entry):
                if key not in keys:
                    keys.append(key)

        for key in keys:
            self._state.manifest_specs[key] = ManifestSpec(path=key)
            logger.debug(f"Registered manifest {key}")
        return keys

    def _expand_manifest_entry(self, entry: str) -> list[str]:
        if is_glob_pattern(entry):
            files = resolve_manifest_files(entry, self.project_root)
            if not files:
                logger.warning(f"Manifest pattern {entry!r} matched no YAML files")
            return [self._relative_key(path) for path in files]

        path = Path(entry)
        absolute = path if path.is_absolute() else self.project_root / path
        if absolute.is_dir() or is_yaml_file(path):
            return [entry]
        logger.warning(f"Skipping {entry!r}: not a YAML file or directory")
        return []

    def _relative_key(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_root).as_posix()
        except ValueError:
            return path.as_posix()

    def clear_registrations(self) -> None:
        """Drop every registered build and manifest from the live state.

        Called before the configuration script runs so that resources it no
        longer registers show up as removed in the next diff.
        """
        self._require_initialized()
        self._state.build_specs.clear()
        self._state.manifest_specs.clear()

    def configure(
        self,
        *,
        registry: str | None = None,
        cluster_context: str | None = None,
        namespace: str | None = None,
    ) -> None:
        """Override the registry, cluster context or namespace."""
        self._require_initialized()
        if registry is not None:
            self._state.registry = registry
        if cluster_context is not None:
            self._state.cluster_context = cluster_context
        if namespace is not None:
            self._state.namespace = normalize_namespace(namespace)

    # =========================================================================
    # Snapshots
    # =========================================================================

    @property
    def state(self) -> DesiredState:
        """Deep copy of the live state."""
        return self._state.model_copy(deep=True)

    def snapshot_baseline(self) -> DesiredState:
        """Deep copy of the last rebased state (the old side of a diff)."""
        return self._baseline.model_copy(deep=True)

    def applied_state(self, exclude: Mapping[str, Iterable[str]] | None = None) -> DesiredState:
        """Live state with the changes of some collection keys left out.

        Args:
            exclude: Collection key (``buildSpecs``, ``manifestSpecs``) to the
                entries whose changes were not applied

        Returns:
            Deep copy of the live state in which every excluded entry holds
            its baseline value, or is absent when the baseline has none
        """
        state = self._state.model_copy(deep=True)
        for collection, keys in (exclude or {}).items():
            live = getattr(state, _COLLECTION_FIELDS[collection])
            old = getattr(self._baseline, _COLLECTION_FIELDS[collection])
            for key in keys:
                if key in old:
                    live[key] = old[key].model_copy(deep=True)
                else:
                    live.pop(key, None)
        return state

    def rebase(self, exclude: Mapping[str, Iterable[str]] | None = None) -> None:
        """Make the live state the new baseline.

        Entries named in ``exclude`` keep their baseline value, so the next
        diff reports them again.
        """
        self._baseline = self.applied_state(exclude)

    # =========================================================================
    # Persistence
    # =========================================================================

    def serialize(self, exclude: Mapping[str, Iterable[str]] | None = None) -> str:
        """Serialize the live state (see applied_state) with stable key ordering."""
        document = self.applied_state(exclude).to_document()
        return json.dumps(document, indent=2, sort_keys=True) + "\n"

    async def persist(self, exclude: Mapping[str, Iterable[str]] | None = None) -> None:
        """Write the live state to the state file.

        Entries named in ``exclude`` are written with their baseline value.

        Raises:
            PersistError: If the file or its directory cannot be written
        """
        content = self.serialize(exclude)

        def _write() -> None:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            self.state_file.write_text(content, encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise PersistError(
                f"Failed to write state file {self.state_file}", details=str(e)
            ) from e
        logger.debug(f"Persisted state to {self.state_file}")
