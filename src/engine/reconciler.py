"""State diffing for reconciliation passes.

Compares two desired-state snapshots key by key and classifies every
difference as added, removed, or modified. Only the two tracked
collections are compared per entry; the remaining top-level fields
(registry, cluster context, namespace) are compared as whole values and
only feed the operator-visible change log.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from .models import (
    BUILD_SPECS,
    MANIFEST_SPECS,
    TRACKED_COLLECTIONS,
    BuildSpec,
    ChangeKind,
    ChangeRecord,
    CollectionChanges,
    DesiredState,
    ManifestSpec,
)


class Reconciler:
    """Computes the change set between a baseline and the live state."""

    def diff(self, old: DesiredState, new: DesiredState) -> list[ChangeRecord]:
        """Compare two states.

        Args:
            old: Baseline state (the last rebased snapshot)
            new: Live state after registration

        Returns:
            Change records: scalar fields first, then each tracked collection
            in key order
        """
        records: list[ChangeRecord] = []
        old_doc = _fields_by_alias(old)
        new_doc = _fields_by_alias(new)

        for key in new_doc:
            if key in TRACKED_COLLECTIONS:
                continue
            if _structural(old_doc.get(key)) != _structural(new_doc[key]):
                records.append(
                    ChangeRecord(
                        kind=ChangeKind.MODIFIED,
                        path=(key,),
                        new_value=new_doc[key],
                        old_value=old_doc.get(key),
                    )
                )

        for collection in TRACKED_COLLECTIONS:
            records.extend(
                self._diff_collection(
                    collection, old_doc.get(collection, {}), new_doc.get(collection, {})
                )
            )
        return records

    def _diff_collection(
        self,
        collection: str,
        old: Mapping[str, Any],
        new: Mapping[str, Any],
    ) -> list[ChangeRecord]:
        records: list[ChangeRecord] = []
        for key in sorted(old.keys() | new.keys()):
            path = (collection, key)
            if key not in old:
                records.append(
                    ChangeRecord(kind=ChangeKind.ADDED, path=path, new_value=new[key])
                )
            elif key not in new:
                records.append(
                    ChangeRecord(kind=ChangeKind.REMOVED, path=path, old_value=old[key])
                )
            elif _structural(old[key]) != _structural(new[key]):
                records.append(
                    ChangeRecord(
                        kind=ChangeKind.MODIFIED,
                        path=path,
                        new_value=new[key],
                        old_value=old[key],
                    )
                )
        return records

    def build_changes(
        self, records: Iterable[ChangeRecord]
    ) -> CollectionChanges[BuildSpec]:
        """Partition the image build changes."""
        return _partition(BUILD_SPECS, records)

    def manifest_changes(
        self, records: Iterable[ChangeRecord]
    ) -> CollectionChanges[ManifestSpec]:
        """Partition the manifest changes."""
        return _partition(MANIFEST_SPECS, records)

    def scalar_changes(self, records: Iterable[ChangeRecord]) -> list[ChangeRecord]:
        """Changes outside the tracked collections (change log only)."""
        return [r for r in records if r.collection not in TRACKED_COLLECTIONS]


def _partition(collection: str, records: Iterable[ChangeRecord]) -> CollectionChanges[Any]:
    """Partition one collection's records into added / removed / modified.

    A key that is both removed and added within the records (a replacement)
    is classified as modified so that removal and rebuild never race.
    """
    added: dict[str, Any] = {}
    removed: dict[str, Any] = {}
    modified: dict[str, Any] = {}

    for record in records:
        if record.collection != collection or len(record.path) != 2:
            continue
        key = record.path[1]
        match record.kind:
            case ChangeKind.ADDED:
                if key in removed:
                    del removed[key]
                    modified[key] = record.new_value
                else:
                    added[key] = record.new_value
            case ChangeKind.REMOVED:
                if key in added:
                    modified[key] = added.pop(key)
                else:
                    removed[key] = record.old_value
            case ChangeKind.MODIFIED:
                added.pop(key, None)
                removed.pop(key, None)
                modified[key] = record.new_value

    return CollectionChanges(
        added=list(added.values()),
        removed=list(removed.keys()),
        modified=list(modified.values()),
    )


def _fields_by_alias(state: DesiredState) -> dict[str, Any]:
    return {
        info.alias or name: getattr(state, name)
        for name, info in DesiredState.model_fields.items()
    }


def _structural(value: Any) -> Any:
    """Plain-data form used for deep equality."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, Mapping):
        return {k: _structural(v) for k, v in value.items()}
    return value
