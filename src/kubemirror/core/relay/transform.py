"""
Per-event object transforms applied by the relay before forwarding.

Two transforms run on every data event:

1. ``managedFields`` is stripped from every nested mapping. It is bulky
   server bookkeeping the UI never reads.
2. When a subscription names a field projection, only the listed dotted
   paths plus a minimal identity set survive.
"""

from __future__ import annotations

import json
from typing import Any

# Always kept when a projection is active so the client can still key objects
IDENTITY_FIELDS: tuple[str, ...] = (
    "apiVersion",
    "kind",
    "metadata.name",
    "metadata.namespace",
    "metadata.labels",
    "metadata.creationTimestamp",
    "metadata.deletionTimestamp",
    "metadata.resourceVersion",
)

_WILDCARDS = ("*", "[*]")


def parse_projection_fields(raw: str | None) -> list[str]:
    """
    Parse the ``fields`` subscription parameter.

    Accepts a JSON array of strings or a comma-separated list. Blank entries
    are dropped.

    Example:
        >>> parse_projection_fields('["spec.replicas", "status"]')
        ['spec.replicas', 'status']
        >>> parse_projection_fields("spec.replicas, status")
        ['spec.replicas', 'status']
    """
    if not raw or not raw.strip():
        return []

    raw = raw.strip()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

    return [part.strip() for part in raw.split(",") if part.strip()]


def _encoded_size(value: Any) -> int:
    return len(json.dumps(value, separators=(",", ":")))


def _strip(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip(v) for k, v in value.items() if k != "managedFields"}
    if isinstance(value, list):
        return [_strip(item) for item in value]
    return value


def strip_managed_fields(obj: dict[str, Any]) -> tuple[dict[str, Any], int]:
    """
    Remove ``managedFields`` at any depth.

    Returns:
        The stripped copy and the number of encoded bytes removed
    """
    stripped = _strip(obj)
    return stripped, max(0, _encoded_size(obj) - _encoded_size(stripped))


def _copy_path(value: Any, parts: list[str], idx: int) -> Any:
    """Copy the sub-tree of ``value`` reached by ``parts[idx:]``, or None."""
    if idx >= len(parts):
        return value

    key = parts[idx]
    if isinstance(value, dict):
        if key in _WILDCARDS or key not in value:
            return None
        child = _copy_path(value[key], parts, idx + 1)
        return None if child is None else {key: child}

    if isinstance(value, list):
        if key not in _WILDCARDS:
            return None
        copied = [_copy_path(item, parts, idx + 1) for item in value]
        return [item for item in copied if item is not None]

    return None


def _merge(dst: Any, src: Any) -> Any:
    if isinstance(dst, dict) and isinstance(src, dict):
        merged = dict(dst)
        for key, value in src.items():
            merged[key] = _merge(merged[key], value) if key in merged else value
        return merged

    if isinstance(dst, list) and isinstance(src, list):
        merged_list = []
        for i in range(max(len(dst), len(src))):
            left = dst[i] if i < len(dst) else None
            right = src[i] if i < len(src) else None
            if left is None:
                merged_list.append(right)
            elif right is None:
                merged_list.append(left)
            else:
                merged_list.append(_merge(left, right))
        return merged_list

    return src if src is not None else dst


def project_object(obj: dict[str, Any], fields: list[str]) -> dict[str, Any]:
    """
    Keep only the dotted ``fields`` paths plus the identity set.

    A ``*`` or ``[*]`` segment descends into every element of a list.
    Paths that do not resolve are ignored. An empty ``fields`` list returns
    the object unchanged.

    Example:
        >>> project_object(
        ...     {"kind": "Pod", "metadata": {"name": "a", "uid": "1"}, "spec": {"x": 1}},
        ...     ["spec.x"],
        ... )
        {'kind': 'Pod', 'metadata': {'name': 'a'}, 'spec': {'x': 1}}
    """
    if not fields:
        return obj

    result: dict[str, Any] = {}
    for path in (*IDENTITY_FIELDS, *fields):
        parts = [p for p in path.split(".") if p]
        if not parts:
            continue
        copied = _copy_path(obj, parts, 0)
        if isinstance(copied, dict):
            result = _merge(result, copied)
    return result


def transform_object(
    obj: dict[str, Any], fields: list[str] | None = None
) -> tuple[dict[str, Any], int]:
    """
    Apply both transforms to one object.

    Returns:
        The transformed object and the bytes removed by the managedFields strip
    """
    stripped, removed = strip_managed_fields(obj)
    if fields:
        stripped = project_object(stripped, fields)
    return stripped, removed


__all__ = [
    "IDENTITY_FIELDS",
    "parse_projection_fields",
    "project_object",
    "strip_managed_fields",
    "transform_object",
]
