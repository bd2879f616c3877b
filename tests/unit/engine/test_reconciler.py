"""Unit tests for state diffing."""

from __future__ import annotations

import pytest

from src.engine.models import (
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
from src.engine.reconciler import Reconciler


def _state(builds: dict[str, BuildSpec] | None = None, manifests: list[str] = ()) -> DesiredState:
    return DesiredState(
        registry="localhost:5000",
        cluster_context="k3d-local-dev",
        namespace="dev",
        build_specs=dict(builds or {}),
        manifest_specs={path: ManifestSpec(path=path) for path in manifests},
    )


def _build(name: str, context: str = ".", **kwargs) -> BuildSpec:
    return BuildSpec(image_name=name, build_context=BuildContext(context=context), **kwargs)


@pytest.fixture
def reconciler() -> Reconciler:
    return Reconciler()


class TestDiff:
    def test_identical_states_have_no_changes(self, reconciler: Reconciler) -> None:
        state = _state({"app": _build("app")}, ["k8s/app.yaml"])

        assert reconciler.diff(state, state.model_copy(deep=True)) == []

    def test_added_build_is_recorded_at_its_path(self, reconciler: Reconciler) -> None:
        records = reconciler.diff(_state(), _state({"app": _build("app", "./app")}))

        assert len(records) == 1
        assert records[0].kind is ChangeKind.ADDED
        assert records[0].path == ("buildSpecs", "app")
        assert records[0].old_value is None
        assert records[0].new_value.build_context.context == "./app"

    def test_removed_manifest(self, reconciler: Reconciler) -> None:
        records = reconciler.diff(_state(manifests=["a.yaml"]), _state())

        assert [(r.kind, r.path) for r in records] == [
            (ChangeKind.REMOVED, ("manifestSpecs", "a.yaml"))
        ]

    def test_structural_change_is_modified(self, reconciler: Reconciler) -> None:
        old = _state({"app": _build("app")})
        new = _state(
            {
                "app": _build(
                    "app",
                    hot_reload=HotReload(live_steps=(SyncStep(src="src/**/*", dest="/app/src"),)),
                )
            }
        )

        records = reconciler.diff(old, new)

        assert [(r.kind, r.path) for r in records] == [
            (ChangeKind.MODIFIED, ("buildSpecs", "app"))
        ]

    def test_trigger_order_does_not_matter(self, reconciler: Reconciler) -> None:
        def spec(triggers: list[str]) -> BuildSpec:
            step = RunStep(command="npm ci", trigger_patterns=frozenset(triggers))
            return _build("app", hot_reload=HotReload(live_steps=(step,)))

        old = _state({"app": spec(["a", "b"])})
        new = _state({"app": spec(["b", "a"])})

        assert reconciler.diff(old, new) == []

    def test_every_new_key_is_added_exactly_once(self, reconciler: Reconciler) -> None:
        old = _state({"a": _build("a"), "b": _build("b")})
        new = _state({"b": _build("b"), "c": _build("c"), "d": _build("d")})

        records = reconciler.diff(old, new)
        added = [r.key for r in records if r.kind is ChangeKind.ADDED]
        removed = [r.key for r in records if r.kind is ChangeKind.REMOVED]

        assert added == ["c", "d"]
        assert removed == ["a"]
        assert not [r for r in records if r.kind is ChangeKind.MODIFIED]

    def test_scalar_fields_are_reported_but_not_partitioned(
        self, reconciler: Reconciler
    ) -> None:
        old = _state()
        new = _state()
        new.registry = "registry.local:5000"

        records = reconciler.diff(old, new)

        assert [(r.kind, r.path) for r in records] == [
            (ChangeKind.MODIFIED, ("registry",))
        ]
        assert reconciler.scalar_changes(records) == records
        assert not reconciler.build_changes(records)
        assert not reconciler.manifest_changes(records)

    def test_change_record_document_uses_camel_case(self, reconciler: Reconciler) -> None:
        records = reconciler.diff(_state(), _state({"app": _build("app", "./app")}))

        doc = records[0].to_document()

        assert doc["kind"] == "added"
        assert doc["path"] == ["buildSpecs", "app"]
        assert doc["newValue"]["imageName"] == "app"
        assert "oldValue" not in doc


class TestPartition:
    def test_build_changes_partition(self, reconciler: Reconciler) -> None:
        old = _state({"gone": _build("gone"), "same": _build("same"), "edit": _build("edit")})
        new = _state({"same": _build("same"), "edit": _build("edit", "./x"), "new": _build("new")})

        changes = reconciler.build_changes(reconciler.diff(old, new))

        assert [s.image_name for s in changes.added] == ["new"]
        assert changes.removed == ["gone"]
        assert [s.image_name for s in changes.modified] == ["edit"]
        assert [s.image_name for s in changes.to_apply] == ["new", "edit"]

    def test_removed_then_added_key_is_modified(self, reconciler: Reconciler) -> None:
        records = [
            ChangeRecord(ChangeKind.REMOVED, ("buildSpecs", "app"), old_value=_build("app")),
            ChangeRecord(ChangeKind.ADDED, ("buildSpecs", "app"), new_value=_build("app", "./v2")),
        ]

        changes = reconciler.build_changes(records)

        assert changes.added == []
        assert changes.removed == []
        assert [s.build_context.context for s in changes.modified] == ["./v2"]

    def test_added_then_removed_key_is_modified(self, reconciler: Reconciler) -> None:
        records = [
            ChangeRecord(ChangeKind.ADDED, ("manifestSpecs", "a.yaml"), new_value=ManifestSpec(path="a.yaml")),
            ChangeRecord(ChangeKind.REMOVED, ("manifestSpecs", "a.yaml"), old_value=ManifestSpec(path="a.yaml")),
        ]

        changes = reconciler.manifest_changes(records)

        assert changes.removed == []
        assert [s.path for s in changes.modified] == ["a.yaml"]

    def test_collections_are_filtered(self, reconciler: Reconciler) -> None:
        records = reconciler.diff(_state(), _state({"app": _build("app")}, ["a.yaml"]))

        assert [s.image_name for s in reconciler.build_changes(records).added] == ["app"]
        assert [s.path for s in reconciler.manifest_changes(records).added] == ["a.yaml"]
