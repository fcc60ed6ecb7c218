"""
kubemirror - live-state sync engine for Kubernetes dashboards.

Streams object changes from the control plane, multiplexes them to UI
clients over one WebSocket, mirrors them locally and derives a relationship
graph from the mirror.
"""

__version__ = "0.1.0"

# Re-export core models for convenience
from kubemirror.core.config.models import KubeMirrorConfig
from kubemirror.core.stream.models import ChangeEvent, EventKind

__all__ = ["ChangeEvent", "EventKind", "KubeMirrorConfig", "__version__"]
