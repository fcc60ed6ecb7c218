"""
Local mirror store.

Holds the client's current copy of each watched kind, keyed by
``(namespace, name)``. Change events are applied synchronously and
immediately; no event history is kept.

Application rules:
    ADDED     insert, or replace if the key already exists
    MODIFIED  replace; no-op if the key is absent
    DELETED   remove; no-op if the key is absent
    ERROR     ignored (connection state is tracked elsewhere)
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kubemirror.core.kinds import RelationshipPredicate
from kubemirror.core.stream.models import ChangeEvent, EventKind

logger = logging.getLogger(__name__)

# (namespace, name)
ObjectKey = tuple[str, str]


class ObjectRef(BaseModel):
    """Reference to a mirrored object of some kind."""

    model_config = ConfigDict(frozen=True)

    kind: str
    namespace: str = ""
    name: str


class MirroredObject(BaseModel):
    """
    One object in a kind's collection.

    ``derived_children`` are lookup-only back-references filled in by
    relationship inference; they are rebuilt wholesale, never patched.
    """

    kind: str = Field(..., description="Kind identifier")
    namespace: str = Field(default="", description="Namespace; empty for cluster-scoped")
    name: str = Field(..., description="Object name")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Full object payload")
    derived_children: list[ObjectRef] = Field(default_factory=list)

    @property
    def key(self) -> ObjectKey:
        return (self.namespace, self.name)

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(kind=self.kind, namespace=self.namespace, name=self.name)


class KindCollection:
    """All mirrored objects of one kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._objects: dict[ObjectKey, MirroredObject] = {}

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def __iter__(self) -> Iterator[MirroredObject]:
        return iter(self.objects())

    def get(self, name: str, namespace: str = "") -> MirroredObject | None:
        return self._objects.get((namespace, name))

    def keys(self) -> set[ObjectKey]:
        return set(self._objects)

    def objects(self) -> list[MirroredObject]:
        """Objects sorted by name, then namespace."""
        return sorted(self._objects.values(), key=lambda obj: (obj.name, obj.namespace))

    def clear(self) -> None:
        self._objects.clear()

    def apply(self, event: ChangeEvent) -> bool:
        """
        Apply one change event.

        Returns:
            True if the collection changed
        """
        if event.is_error or event.object is None:
            return False
        name = event.name
        if name is None:
            logger.debug("Ignoring %s event without metadata.name for %s", event.kind, self.kind)
            return False

        key = (event.namespace, name)
        if event.kind == EventKind.DELETED:
            return self._objects.pop(key, None) is not None

        if event.kind == EventKind.MODIFIED and key not in self._objects:
            logger.debug("Ignoring MODIFIED for unknown %s %s/%s", self.kind, *key)
            return False

        previous = self._objects.get(key)
        self._objects[key] = MirroredObject(
            kind=self.kind,
            namespace=event.namespace,
            name=name,
            attributes=event.object,
            derived_children=previous.derived_children if previous else [],
        )
        return True


class MirrorStore:
    """Collections for every mirrored kind."""

    def __init__(self) -> None:
        self._collections: dict[str, KindCollection] = {}

    def collection(self, kind: str) -> KindCollection:
        """Get (creating if needed) the collection for ``kind``."""
        if kind not in self._collections:
            self._collections[kind] = KindCollection(kind)
        return self._collections[kind]

    @property
    def kinds(self) -> list[str]:
        return list(self._collections)

    def apply_event(self, kind: str, event: ChangeEvent) -> bool:
        """Apply ``event`` to ``kind``'s collection; True if it changed."""
        return self.collection(kind).apply(event)

    def clear(self, kinds: Iterable[str] | None = None) -> None:
        """Empty the given collections, or all of them."""
        for kind in kinds if kinds is not None else list(self._collections):
            if kind in self._collections:
                self._collections[kind].clear()

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """Kind -> object payloads, in listing order. Suitable for build_graph."""
        return {
            kind: [obj.attributes for obj in collection.objects()]
            for kind, collection in self._collections.items()
        }

    def rebuild_relationships(self, predicates: Iterable[RelationshipPredicate]) -> None:
        """Recompute every object's ``derived_children`` from scratch."""
        by_parent: dict[str, list[RelationshipPredicate]] = {}
        for predicate in predicates:
            by_parent.setdefault(predicate.parent_kind, []).append(predicate)

        for kind, collection in self._collections.items():
            for parent in collection.objects():
                children: list[ObjectRef] = []
                for predicate in by_parent.get(kind, []):
                    child_collection = self._collections.get(predicate.child_kind)
                    if child_collection is None:
                        continue
                    for child in child_collection.objects():
                        if _safe_match(predicate, child.attributes, parent.attributes):
                            children.append(child.ref)
                parent.derived_children = children


def _safe_match(
    predicate: RelationshipPredicate, child: Mapping[str, Any], parent: Mapping[str, Any]
) -> bool:
    try:
        return bool(predicate.match(child, parent))
    except (AttributeError, KeyError, TypeError):
        return False


__all__ = ["KindCollection", "MirrorStore", "MirroredObject", "ObjectRef"]
