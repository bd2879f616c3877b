"""Desired-state data model.

The desired state is a pydantic document serialized with camelCase keys.
Resource collections are keyed by their natural identity (image name,
manifest path). Set-valued fields serialize as sorted lists so that a
persisted document round-trips byte for byte.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class StateModel(BaseModel):
    """Base model for everything stored in the desired-state document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# =============================================================================
# Live steps
# =============================================================================


class SyncStep(StateModel):
    """Copy files matching ``src`` into the container under ``dest``."""

    type: Literal["sync"] = "sync"
    src: str = Field(description="Glob pattern relative to the build context")
    dest: str = Field(description="Absolute destination path inside the container")


class RunStep(StateModel):
    """Run ``command`` in the container when a trigger pattern matches."""

    type: Literal["run"] = "run"
    command: str = Field(description="Shell command executed with sh -c")
    trigger_patterns: frozenset[str] = Field(
        default_factory=frozenset,
        description="Glob patterns relative to the build context",
    )

    @field_serializer("trigger_patterns")
    def _sorted_triggers(self, value: frozenset[str]) -> list[str]:
        return sorted(value)


LiveStep = Annotated[SyncStep | RunStep, Field(discriminator="type")]


# =============================================================================
# Resource specs
# =============================================================================


class BuildContext(StateModel):
    """Where and how to build an image."""

    context: str = Field(default=".", description="Build context directory")
    dockerfile: str = Field(
        default="Dockerfile", description="Dockerfile path relative to the context"
    )
    build_args: dict[str, str] = Field(default_factory=dict)


class HotReload(StateModel):
    """Live-update configuration of a build."""

    ignore_patterns: frozenset[str] = Field(default_factory=frozenset)
    live_steps: tuple[LiveStep, ...] = ()

    @field_serializer("ignore_patterns")
    def _sorted_ignores(self, value: frozenset[str]) -> list[str]:
        return sorted(value)


class BuildSpec(StateModel):
    """A registered image build."""

    image_name: str = Field(min_length=1)
    build_context: BuildContext = Field(default_factory=BuildContext)
    hot_reload: HotReload | None = None

    @property
    def live_steps(self) -> tuple[SyncStep | RunStep, ...]:
        """Declared live steps, empty when hot reload is not configured."""
        return self.hot_reload.live_steps if self.hot_reload else ()


class ManifestSpec(StateModel):
    """A registered manifest: a file, a directory, or a glob pattern."""

    path: str = Field(min_length=1)


class DesiredState(BaseModel):
    """Root document of the desired state.

    Mutated only by the state store; everyone else receives deep copies.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    registry: str
    cluster_context: str
    namespace: str
    build_specs: dict[str, BuildSpec] = Field(default_factory=dict)
    manifest_specs: dict[str, ManifestSpec] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible document with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# Document keys of the collections whose entries are diffed and actioned per key
BUILD_SPECS = "buildSpecs"
MANIFEST_SPECS = "manifestSpecs"
TRACKED_COLLECTIONS = (BUILD_SPECS, MANIFEST_SPECS)


# =============================================================================
# Change records
# =============================================================================


class ChangeKind(str, Enum):
    """Kind of a change between two desired states."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class ChangeRecord:
    """One change between two desired states.

    Attributes:
        kind: Added, Removed, or Modified
        path: Document keys locating the change, e.g. ("buildSpecs", "my-image")
        new_value: Value in the new state (None when removed)
        old_value: Value in the old state (None when added)
    """

    kind: ChangeKind
    path: tuple[str, ...]
    new_value: Any = None
    old_value: Any = None

    @property
    def collection(self) -> str:
        """First path element: the collection or field that changed."""
        return self.path[0]

    @property
    def key(self) -> str | None:
        """Resource key inside a tracked collection, if any."""
        return self.path[1] if len(self.path) > 1 else None

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible representation for change logs."""
        doc: dict[str, Any] = {
            "kind": self.kind.value,
            "path": list(self.path),
        }
        if self.kind is not ChangeKind.REMOVED:
            doc["newValue"] = _as_document(self.new_value)
        if self.kind is not ChangeKind.ADDED:
            doc["oldValue"] = _as_document(self.old_value)
        return doc


SpecT = TypeVar("SpecT")


@dataclass
class CollectionChanges(Generic[SpecT]):
    """Changes of one tracked collection, partitioned by kind."""

    added: list[SpecT] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    modified: list[SpecT] = field(default_factory=list)

    @property
    def to_apply(self) -> list[SpecT]:
        """Specs to build or apply: additions followed by modifications."""
        return [*self.added, *self.modified]

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)


def _as_document(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return value
