"""
Change-stream transport.

Decodes the control plane's newline-delimited watch records into
ChangeEvent instances, one record at a time.
"""

from kubemirror.core.stream.client import (
    ChangeStreamClient,
    decode_record,
    normalize_watch_path,
)
from kubemirror.core.stream.models import ChangeEvent, EventKind

__all__ = [
    "ChangeEvent",
    "ChangeStreamClient",
    "EventKind",
    "decode_record",
    "normalize_watch_path",
]
