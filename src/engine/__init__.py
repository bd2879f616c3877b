"""Reconciliation engine: desired state, diffing, builds, deploys and live sync."""

from .build_engine import BuildEngine
from .cluster_manager import ApplyReport, ClusterManager, ClusterState
from .errors import (
    BuildEngineUnreachable,
    BuildFailed,
    ClusterUnreachable,
    ConfigError,
    DevLoopError,
    ImageError,
    InvalidBuildContext,
    InvalidManifest,
    NothingToDo,
    PersistError,
    PushFailed,
    ReadinessTimeout,
    SyncTargetNotFound,
)
from .models import (
    BuildContext,
    BuildSpec,
    ChangeKind,
    ChangeRecord,
    DesiredState,
    HotReload,
    ManifestSpec,
    RunStep,
    SyncStep,
)
from .namespaces import normalize_namespace
from .orchestrator import Orchestrator, OrchestratorState, UpResult
from .reconciler import Reconciler
from .settings import EngineSettings
from .state_store import StateStore
from .sync_engine import LiveSession, SyncEngine

__all__ = [
    "ApplyReport",
    "BuildContext",
    "BuildEngine",
    "BuildEngineUnreachable",
    "BuildFailed",
    "BuildSpec",
    "ChangeKind",
    "ChangeRecord",
    "ClusterManager",
    "ClusterState",
    "ClusterUnreachable",
    "ConfigError",
    "DesiredState",
    "DevLoopError",
    "EngineSettings",
    "HotReload",
    "ImageError",
    "InvalidBuildContext",
    "InvalidManifest",
    "LiveSession",
    "ManifestSpec",
    "NothingToDo",
    "Orchestrator",
    "OrchestratorState",
    "PersistError",
    "PushFailed",
    "ReadinessTimeout",
    "Reconciler",
    "RunStep",
    "StateStore",
    "SyncEngine",
    "SyncStep",
    "SyncTargetNotFound",
    "UpResult",
    "normalize_namespace",
]
