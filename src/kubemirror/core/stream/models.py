"""
Change-stream data models.

A change stream is a long-lived response body carrying one JSON record per
line, each shaped ``{"type": "ADDED", "object": {...}}``. Records are decoded
into transient ChangeEvent instances; nothing here is ever persisted.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Change record types, spelled as the control plane sends them."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


class ChangeEvent(BaseModel):
    """One decoded change record.

    Example:
        >>> event = ChangeEvent(
        ...     kind=EventKind.ADDED,
        ...     object={"metadata": {"name": "pod-a", "namespace": "default"}},
        ...     source_path="/api/v1/pods?watch=true",
        ... )
        >>> event.name
        'pod-a'
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind = Field(..., description="Change type")
    object: dict[str, Any] | None = Field(default=None, description="Object payload")
    source_path: str = Field(default="", description="Path of the stream that produced it")
    error: str | None = Field(default=None, description="Error text for ERROR events")

    @property
    def metadata(self) -> dict[str, Any]:
        if not self.object:
            return {}
        metadata = self.object.get("metadata")
        return metadata if isinstance(metadata, dict) else {}

    @property
    def name(self) -> str | None:
        name = self.metadata.get("name")
        return name if isinstance(name, str) and name else None

    @property
    def namespace(self) -> str:
        return self.metadata.get("namespace") or ""

    @property
    def is_error(self) -> bool:
        return self.kind == EventKind.ERROR

    def to_wire(self) -> dict[str, Any]:
        """Return the ``{type, object}`` form used on the session channel."""
        data: dict[str, Any] = {"type": self.kind.value}
        if self.object is not None:
            data["object"] = self.object
        return data


__all__ = ["ChangeEvent", "EventKind"]
