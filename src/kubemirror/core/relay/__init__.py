"""
Subscription relay.

Multiplexes many change-stream subscriptions over one client WebSocket.
"""

from kubemirror.core.relay.app import create_app
from kubemirror.core.relay.protocol import ClientMessage, MessageType, ServerMessage
from kubemirror.core.relay.session import Session, SessionChannel
from kubemirror.core.relay.transform import (
    parse_projection_fields,
    project_object,
    strip_managed_fields,
)

__all__ = [
    "ClientMessage",
    "MessageType",
    "ServerMessage",
    "Session",
    "SessionChannel",
    "create_app",
    "parse_projection_fields",
    "project_object",
    "strip_managed_fields",
]
