"""
Wire messages for the session channel.

Client frames subscribe to and unsubscribe from resource paths; server frames
carry streamed changes, acknowledgements, errors, and connection stats. Every
frame is one JSON text message.

Client -> relay:
    {"id": "a1", "action": "subscribe", "path": "/api/v1/pods", "params": {...}}
    {"id": "a2", "action": "unsubscribe", "path": "/api/v1/pods"}

Relay -> client:
    {"id": "a1", "type": "data", "path": "...", "data": {"type": "ADDED", "object": {...}}}
    {"id": "a1", "type": "status", "path": "...", "data": {"type": "subscribed"}}
    {"id": "a1", "type": "error", "path": "...", "error": "..."}
    {"id": "", "type": "ready", "path": ""}
    {"id": "", "type": "stats", "path": "", "data": {"type": "STATS", "object": {...}}}
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from kubemirror.core.errors import InvalidMessageError


class Action(str, Enum):
    """Client request actions."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"


class MessageType(str, Enum):
    """Server message types."""

    DATA = "data"
    ERROR = "error"
    STATUS = "status"
    READY = "ready"
    STATS = "stats"


class SubscriptionStatus(str, Enum):
    """Acknowledgement values carried in status messages."""

    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


class ClientMessage(BaseModel):
    """A request frame from the UI client."""

    id: str = Field(default="", description="Client-chosen request/subscription ID")
    action: str = Field(..., description="subscribe or unsubscribe")
    path: str = Field(default="", description="Resource path")
    params: dict[str, str] | None = Field(default=None, description="Optional parameters")

    @classmethod
    def parse_frame(cls, raw: str | bytes) -> "ClientMessage":
        """
        Parse a raw text frame.

        Raises:
            InvalidMessageError: If the frame is not a valid client message
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidMessageError("invalid message format") from e
        if not isinstance(data, dict):
            raise InvalidMessageError("invalid message format")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidMessageError(
                "invalid message format", request_id=str(data.get("id", ""))
            ) from e


class ServerMessage(BaseModel):
    """A frame sent from the relay to the UI client."""

    id: str = ""
    type: MessageType
    path: str = ""
    data: dict[str, Any] | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict; ``data`` and ``error`` are omitted when empty."""
        out: dict[str, Any] = {"id": self.id, "type": self.type.value, "path": self.path}
        if self.data is not None:
            out["data"] = self.data
        if self.error:
            out["error"] = self.error
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), separators=(",", ":"))


def data_message(request_id: str, path: str, data: dict[str, Any]) -> ServerMessage:
    return ServerMessage(id=request_id, type=MessageType.DATA, path=path, data=data)


def error_message(request_id: str, path: str, error: str) -> ServerMessage:
    return ServerMessage(id=request_id, type=MessageType.ERROR, path=path, error=error)


def status_message(request_id: str, path: str, status: SubscriptionStatus) -> ServerMessage:
    return ServerMessage(
        id=request_id, type=MessageType.STATUS, path=path, data={"type": status.value}
    )


def ready_message() -> ServerMessage:
    return ServerMessage(type=MessageType.READY)


def stats_message(
    objects: int, bytes_sent: int, managed_bytes_removed: int, interval_seconds: float
) -> ServerMessage:
    return ServerMessage(
        type=MessageType.STATS,
        data={
            "type": "STATS",
            "object": {
                "objects": objects,
                "bytesSent": bytes_sent,
                "managedFieldsBytesRemoved": managed_bytes_removed,
                "intervalSeconds": interval_seconds,
            },
        },
    )


__all__ = [
    "Action",
    "ClientMessage",
    "MessageType",
    "ServerMessage",
    "SubscriptionStatus",
    "data_message",
    "error_message",
    "ready_message",
    "stats_message",
    "status_message",
]
