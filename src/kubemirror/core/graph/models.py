"""
Relationship graph data models.

Graphs are ephemeral: they are rebuilt wholesale from the mirrors on every
recompute and never patched in place.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kubemirror.core.kinds import MatchFn, RelationshipPredicate


class NodeType(str, Enum):
    """Graph node types."""

    OBJECT = "object"
    PAGINATION = "pagination"


class PaginationState(BaseModel):
    """Paging state carried by a pagination node.

    The key is the value to use in ``pagination_cursors`` when asking for
    another page of the same fan-out.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Cursor key: '{parent_node_id}-{child_kind}'")
    child_kind: str = Field(..., description="Kind of the paged children")
    offset: int = Field(..., ge=0, description="Index of the first child on this page")
    page: int = Field(..., ge=0, description="Zero-based current page")
    page_size: int = Field(..., ge=1, description="Children per page")
    total_pages: int = Field(..., ge=1, description="Number of pages")
    total_count: int = Field(..., ge=0, description="Number of matching children")

    @property
    def end(self) -> int:
        """Index one past the last child on this page."""
        return min(self.offset + self.page_size, self.total_count)


class GraphNode(BaseModel):
    """A node in the relationship graph."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique node ID")
    type: NodeType = Field(default=NodeType.OBJECT, description="Object or pagination node")
    kind: str = Field(..., description="Kind identifier (child kind for pagination nodes)")
    name: str = Field(default="", description="Object name")
    namespace: str = Field(default="", description="Object namespace")
    object: dict[str, Any] | None = Field(default=None, description="Mirrored object")
    pagination: PaginationState | None = Field(default=None, description="Paging state")

    @property
    def is_pagination(self) -> bool:
        return self.type == NodeType.PAGINATION


class GraphEdge(BaseModel):
    """A directed parent -> child edge."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Parent node ID")
    target: str = Field(..., description="Child node ID")


class Graph(BaseModel):
    """Nodes and edges produced by one build, in emission order."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)

    def node(self, node_id: str) -> GraphNode | None:
        """Look up a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def children_of(self, node_id: str) -> list[GraphNode]:
        """Direct children of ``node_id`` in emission order."""
        targets = [edge.target for edge in self.edges if edge.source == node_id]
        by_id = {node.id: node for node in self.nodes}
        return [by_id[target] for target in targets if target in by_id]

    def pagination_nodes(self) -> list[GraphNode]:
        return [node for node in self.nodes if node.is_pagination]

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]


__all__ = [
    "Graph",
    "GraphEdge",
    "GraphNode",
    "MatchFn",
    "NodeType",
    "PaginationState",
    "RelationshipPredicate",
]
