"""
Client-side local mirror of watched kinds.
"""

from kubemirror.core.mirror.debounce import Debouncer
from kubemirror.core.mirror.store import KindCollection, MirroredObject, MirrorStore, ObjectRef
from kubemirror.core.mirror.sync import (
    ConnectionMonitor,
    ConnectionState,
    MirrorSync,
    ReconnectPolicy,
    RelayClient,
)

__all__ = [
    "ConnectionMonitor",
    "ConnectionState",
    "Debouncer",
    "KindCollection",
    "MirrorStore",
    "MirrorSync",
    "MirroredObject",
    "ObjectRef",
    "ReconnectPolicy",
    "RelayClient",
]
