"""
Relationship graph construction over mirrored objects.
"""

from kubemirror.core.graph.builder import DEFAULT_PAGE_SIZE, build_graph, pagination_key
from kubemirror.core.graph.models import (
    Graph,
    GraphEdge,
    GraphNode,
    NodeType,
    PaginationState,
    RelationshipPredicate,
)
from kubemirror.core.graph.ordering import order_by_change_groups

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Graph",
    "GraphEdge",
    "GraphNode",
    "NodeType",
    "PaginationState",
    "RelationshipPredicate",
    "build_graph",
    "order_by_change_groups",
    "pagination_key",
]
