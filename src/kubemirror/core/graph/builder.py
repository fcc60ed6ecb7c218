"""
Relationship graph builder.

``build_graph`` is a pure function from mirrored collections, relationship
predicates, a visibility set and pagination cursors to a Graph. It never
fails: missing matches or empty mirrors simply leave branches out, and the
worst case is a graph holding only the root.

Build steps:
    1. One node for the root object.
    2. For every predicate keyed on a placed object's kind, scan the child
       kind's collection and attach matches as child nodes.
    3. Recurse depth-first so children become candidate parents.
    4. Hidden kinds never become nodes; their children attach to the nearest
       visible ancestor.
    5. More than ``page_size`` same-kind children under one parent are paged:
       only the current page becomes nodes, hung off a pagination node.
    6. Siblings are ordered by their declared change groups.

Example:
    >>> graph = build_graph(
    ...     deployment,
    ...     {"apps/ReplicaSet": replicasets, "core/Pod": pods},
    ...     DEFAULT_PREDICATES,
    ...     root_kind="apps/Deployment",
    ...     hidden_kinds={"apps/ReplicaSet"},
    ... )
    >>> [node.kind for node in graph.children_of(graph.nodes[0].id)]
    ['core/Pod', 'core/Pod']
"""

from __future__ import annotations

import logging
import math
from collections.abc import Collection, Iterable, Mapping
from typing import Any

from kubemirror.core.graph.models import (
    Graph,
    GraphEdge,
    GraphNode,
    NodeType,
    PaginationState,
)
from kubemirror.core.graph.ordering import order_by_change_groups
from kubemirror.core.kinds import RelationshipPredicate, kind_of

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5

# (kind, namespace, name)
ObjectKey = tuple[str, str, str]


def object_key(kind: str, obj: Mapping[str, Any]) -> ObjectKey:
    metadata = obj.get("metadata") or {}
    return (kind, metadata.get("namespace") or "", metadata.get("name") or "")


def node_id_for(kind: str, obj: Mapping[str, Any]) -> str:
    """Stable node ID: ``<kind>:<namespace>/<name>`` or ``<kind>:<name>``."""
    _, namespace, name = object_key(kind, obj)
    return f"{kind}:{namespace}/{name}" if namespace else f"{kind}:{name}"


def pagination_key(parent_node_id: str, child_kind: str) -> str:
    """Cursor key for one parent's fan-out of ``child_kind`` children."""
    return f"{parent_node_id}-{child_kind}"


class _GraphBuilder:
    """Accumulates nodes and edges for a single build."""

    def __init__(
        self,
        mirrors: Mapping[str, Iterable[Mapping[str, Any]]],
        predicates: Iterable[RelationshipPredicate],
        hidden_kinds: Collection[str],
        visible_kinds: Collection[str] | None,
        pagination_cursors: Mapping[str, int],
        page_size: int,
    ) -> None:
        self.mirrors = {kind: list(objects) for kind, objects in mirrors.items()}
        self.predicates_by_parent: dict[str, list[RelationshipPredicate]] = {}
        for predicate in predicates:
            self.predicates_by_parent.setdefault(predicate.parent_kind, []).append(predicate)
        self.hidden_kinds = hidden_kinds
        self.visible_kinds = visible_kinds
        self.cursors = pagination_cursors
        self.page_size = max(1, page_size)

        self.nodes: dict[str, GraphNode] = {}
        self.edges: dict[tuple[str, str], GraphEdge] = {}

    def is_visible(self, kind: str) -> bool:
        if kind in self.hidden_kinds:
            return False
        return self.visible_kinds is None or kind in self.visible_kinds

    # -------------------------------------------------------------------------
    # Graph mutation
    # -------------------------------------------------------------------------

    def add_object_node(self, kind: str, obj: Mapping[str, Any]) -> str:
        node_id = node_id_for(kind, obj)
        if node_id not in self.nodes:
            _, namespace, name = object_key(kind, obj)
            self.nodes[node_id] = GraphNode(
                id=node_id,
                type=NodeType.OBJECT,
                kind=kind,
                name=name,
                namespace=namespace,
                object=dict(obj),
            )
        return node_id

    def add_edge(self, source: str, target: str) -> None:
        if source != target and (source, target) not in self.edges:
            self.edges[(source, target)] = GraphEdge(source=source, target=target)

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def matched_children(
        self, kind: str, obj: Mapping[str, Any], on_path: frozenset[ObjectKey]
    ) -> list[tuple[str, Mapping[str, Any]]]:
        matches: list[tuple[str, Mapping[str, Any]]] = []
        seen: set[ObjectKey] = set()
        for predicate in self.predicates_by_parent.get(kind, []):
            for child in self.mirrors.get(predicate.child_kind, []):
                key = object_key(predicate.child_kind, child)
                if key in on_path or key in seen:
                    continue
                try:
                    matched = predicate.match(child, obj)
                except (AttributeError, KeyError, TypeError) as e:
                    logger.debug("Predicate %s -> %s failed: %s", kind, predicate.child_kind, e)
                    continue
                if matched:
                    seen.add(key)
                    matches.append((predicate.child_kind, child))
        return order_by_change_groups(matches, key=lambda pair: pair[1])

    def expand(
        self,
        kind: str,
        obj: Mapping[str, Any],
        anchor_id: str,
        on_path: frozenset[ObjectKey],
    ) -> None:
        """Attach ``obj``'s children under ``anchor_id``, paging large fan-outs."""
        by_kind: dict[str, list[Mapping[str, Any]]] = {}
        for child_kind, child in self.matched_children(kind, obj, on_path):
            by_kind.setdefault(child_kind, []).append(child)

        for child_kind, children in by_kind.items():
            attach_to = anchor_id
            if len(children) > self.page_size:
                attach_to, children = self.paginate(anchor_id, child_kind, children)
            for child in children:
                self.place(child_kind, child, attach_to, on_path)

    def paginate(
        self, anchor_id: str, child_kind: str, children: list[Mapping[str, Any]]
    ) -> tuple[str, list[Mapping[str, Any]]]:
        key = pagination_key(anchor_id, child_kind)
        total = len(children)
        total_pages = math.ceil(total / self.page_size)
        page = min(max(int(self.cursors.get(key, 0)), 0), total_pages - 1)
        offset = page * self.page_size

        node_id = f"pagination-{key}"
        if node_id not in self.nodes:
            self.nodes[node_id] = GraphNode(
                id=node_id,
                type=NodeType.PAGINATION,
                kind=child_kind,
                pagination=PaginationState(
                    key=key,
                    child_kind=child_kind,
                    offset=offset,
                    page=page,
                    page_size=self.page_size,
                    total_pages=total_pages,
                    total_count=total,
                ),
            )
        self.add_edge(anchor_id, node_id)
        return node_id, children[offset : offset + self.page_size]

    def place(
        self,
        kind: str,
        obj: Mapping[str, Any],
        parent_id: str,
        on_path: frozenset[ObjectKey],
    ) -> None:
        if self.is_visible(kind):
            anchor_id = self.add_object_node(kind, obj)
            self.add_edge(parent_id, anchor_id)
        else:
            # Hidden: children reparent onto the nearest visible ancestor
            anchor_id = parent_id
        self.expand(kind, obj, anchor_id, on_path | {object_key(kind, obj)})

    def graph(self) -> Graph:
        return Graph(nodes=list(self.nodes.values()), edges=list(self.edges.values()))


def build_graph(
    root: Mapping[str, Any],
    mirrors: Mapping[str, Iterable[Mapping[str, Any]]],
    predicates: Iterable[RelationshipPredicate],
    *,
    root_kind: str | None = None,
    hidden_kinds: Collection[str] = (),
    visible_kinds: Collection[str] | None = None,
    pagination_cursors: Mapping[str, int] | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Graph:
    """
    Build the relationship graph rooted at ``root``.

    Args:
        root: Root object; always rendered regardless of visibility
        mirrors: Kind identifier -> objects of that kind
        predicates: Relationship predicates
        root_kind: Kind of the root; derived from apiVersion/kind when omitted
        hidden_kinds: Kinds never rendered as nodes
        visible_kinds: When given, only these kinds (and the root) are rendered
        pagination_cursors: Pagination key -> requested zero-based page
        page_size: Same-kind children per parent before paging kicks in

    Returns:
        Graph with nodes and edges in emission order
    """
    kind = root_kind or kind_of(root)
    builder = _GraphBuilder(
        mirrors,
        predicates,
        hidden_kinds,
        visible_kinds,
        pagination_cursors or {},
        page_size,
    )
    root_id = builder.add_object_node(kind, root)
    builder.expand(kind, root, root_id, frozenset({object_key(kind, root)}))

    graph = builder.graph()
    logger.debug(
        "Built graph for %s: %d nodes, %d edges", root_id, len(graph.nodes), len(graph.edges)
    )
    return graph


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "build_graph",
    "node_id_for",
    "object_key",
    "pagination_key",
]
