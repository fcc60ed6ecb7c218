"""Tests for the local mirror store."""

import random

import pytest

from kubemirror.core.kinds import DEFAULT_PREDICATES
from kubemirror.core.mirror.store import KindCollection, MirrorStore, ObjectRef
from kubemirror.core.stream.models import ChangeEvent, EventKind

POD = "core/Pod"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _event(kind: EventKind, name: str, namespace: str = "default", **extra) -> ChangeEvent:
    obj = {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": name, "namespace": namespace}}
    obj.update(extra)
    return ChangeEvent(kind=kind, object=obj)


# ---------------------------------------------------------------------------
# Application rules
# ---------------------------------------------------------------------------


class TestApplyEvent:
    def test_added_inserts(self) -> None:
        store = MirrorStore()
        assert store.apply_event(POD, _event(EventKind.ADDED, "pod-a")) is True
        assert store.collection(POD).get("pod-a", "default") is not None

    def test_duplicate_added_replaces(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a", status={"phase": "Pending"}))
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a", status={"phase": "Running"}))

        collection = store.collection(POD)
        assert len(collection) == 1
        assert collection.get("pod-a", "default").attributes["status"]["phase"] == "Running"

    def test_modified_replaces(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a"))
        store.apply_event(POD, _event(EventKind.MODIFIED, "pod-a", status={"phase": "Running"}))
        assert store.collection(POD).get("pod-a", "default").attributes["status"] == {
            "phase": "Running"
        }

    def test_modified_unknown_is_noop(self) -> None:
        store = MirrorStore()
        assert store.apply_event(POD, _event(EventKind.MODIFIED, "ghost")) is False
        assert len(store.collection(POD)) == 0

    def test_deleted_removes(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a"))
        assert store.apply_event(POD, _event(EventKind.DELETED, "pod-a")) is True
        assert len(store.collection(POD)) == 0

    def test_deleted_unknown_is_noop(self) -> None:
        store = MirrorStore()
        assert store.apply_event(POD, _event(EventKind.DELETED, "ghost")) is False

    def test_added_modified_deleted_leaves_absent(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a"))
        store.apply_event(POD, _event(EventKind.MODIFIED, "pod-a", status={"phase": "Running"}))
        store.apply_event(POD, _event(EventKind.DELETED, "pod-a"))
        assert store.collection(POD).get("pod-a", "default") is None

    def test_same_name_different_namespaces(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a", namespace="one"))
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a", namespace="two"))
        store.apply_event(POD, _event(EventKind.DELETED, "pod-a", namespace="one"))
        assert store.collection(POD).keys() == {("two", "pod-a")}

    def test_error_events_ignored(self) -> None:
        store = MirrorStore()
        assert store.apply_event(POD, ChangeEvent(kind=EventKind.ERROR, error="boom")) is False

    def test_objects_without_name_ignored(self) -> None:
        store = MirrorStore()
        event = ChangeEvent(kind=EventKind.ADDED, object={"metadata": {}})
        assert store.apply_event(POD, event) is False


class TestFinalStateProperty:
    @pytest.mark.parametrize("seed", range(10))
    def test_final_state_matches_last_write(self, seed: int) -> None:
        """Final keys are those last Added/Modified and not later Deleted."""
        rng = random.Random(seed)
        names = [f"pod-{i}" for i in range(6)]
        store = MirrorStore()
        expected: set[tuple[str, str]] = set()

        for _ in range(200):
            name = rng.choice(names)
            kind = rng.choice([EventKind.ADDED, EventKind.MODIFIED, EventKind.DELETED])
            store.apply_event(POD, _event(kind, name))
            key = ("default", name)
            if kind == EventKind.ADDED:
                expected.add(key)
            elif kind == EventKind.DELETED:
                expected.discard(key)

        assert store.collection(POD).keys() == expected


# ---------------------------------------------------------------------------
# Listing and snapshots
# ---------------------------------------------------------------------------


class TestListing:
    def test_sorted_by_name_then_namespace(self) -> None:
        collection = KindCollection(POD)
        for name, namespace in [("b", "x"), ("a", "z"), ("a", "y")]:
            collection.apply(_event(EventKind.ADDED, name, namespace=namespace))

        assert [(o.name, o.namespace) for o in collection.objects()] == [
            ("a", "y"),
            ("a", "z"),
            ("b", "x"),
        ]

    def test_snapshot(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-b"))
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a"))
        snapshot = store.snapshot()
        assert [o["metadata"]["name"] for o in snapshot[POD]] == ["pod-a", "pod-b"]

    def test_clear_selected_kinds(self) -> None:
        store = MirrorStore()
        store.apply_event(POD, _event(EventKind.ADDED, "pod-a"))
        store.apply_event("apps/Deployment", _event(EventKind.ADDED, "web"))
        store.clear([POD])
        assert len(store.collection(POD)) == 0
        assert len(store.collection("apps/Deployment")) == 1


# ---------------------------------------------------------------------------
# Derived children
# ---------------------------------------------------------------------------


class TestRebuildRelationships:
    def _store(self) -> MirrorStore:
        store = MirrorStore()
        store.apply_event(
            "apps/ReplicaSet",
            ChangeEvent(
                kind=EventKind.ADDED,
                object={"metadata": {"name": "web-1", "namespace": "default"}},
            ),
        )
        for name in ("web-1-a", "web-1-b"):
            store.apply_event(
                POD,
                ChangeEvent(
                    kind=EventKind.ADDED,
                    object={
                        "metadata": {
                            "name": name,
                            "namespace": "default",
                            "ownerReferences": [{"kind": "ReplicaSet", "name": "web-1"}],
                        }
                    },
                ),
            )
        return store

    def test_children_derived_from_predicates(self) -> None:
        store = self._store()
        store.rebuild_relationships(DEFAULT_PREDICATES)

        rs = store.collection("apps/ReplicaSet").get("web-1", "default")
        assert rs.derived_children == [
            ObjectRef(kind=POD, namespace="default", name="web-1-a"),
            ObjectRef(kind=POD, namespace="default", name="web-1-b"),
        ]

    def test_rebuild_drops_stale_children(self) -> None:
        store = self._store()
        store.rebuild_relationships(DEFAULT_PREDICATES)
        store.apply_event(POD, _event(EventKind.DELETED, "web-1-a"))
        store.rebuild_relationships(DEFAULT_PREDICATES)

        rs = store.collection("apps/ReplicaSet").get("web-1", "default")
        assert [ref.name for ref in rs.derived_children] == ["web-1-b"]
