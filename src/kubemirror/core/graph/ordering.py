"""
Dependency-group ordering for sibling objects.

Siblings declare the groups they belong to with ``kapp.k14s.io/change-group``
(or ``kapp.k14s.io/change-group.<suffix>``) annotations, and dependencies on
other groups with ``kapp.k14s.io/change-rule[.<suffix>]`` annotations of the
form ``upsert after upserting <group>``.

Groups are ordered with Kahn's algorithm. Members of each group are emitted
in sorted-group order; a sibling in several groups is emitted once, at the
first of its groups. Siblings whose groups sit on a cycle follow all
resolvable groups in their original order, and ungrouped siblings come last,
also in original order.

Example:
    >>> a = {"metadata": {"name": "a", "annotations": {CHANGE_GROUP: "g1"}}}
    >>> b = {"metadata": {"name": "b", "annotations": {
    ...     CHANGE_GROUP: "g2", CHANGE_RULE: "upsert after upserting g1"}}}
    >>> c = {"metadata": {"name": "c"}}
    >>> [o["metadata"]["name"] for o in order_by_change_groups([c, b, a])]
    ['a', 'b', 'c']
"""

from collections import deque
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

CHANGE_GROUP = "kapp.k14s.io/change-group"
CHANGE_RULE = "kapp.k14s.io/change-rule"

T = TypeVar("T")


def _annotations(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = obj.get("metadata") or {}
    annotations = metadata.get("annotations") if isinstance(metadata, Mapping) else None
    return annotations if isinstance(annotations, Mapping) else {}


def _matching_values(obj: Mapping[str, Any], prefix: str) -> list[str]:
    values = []
    for key, value in _annotations(obj).items():
        if key != prefix and not key.startswith(prefix + "."):
            continue
        if isinstance(value, str) and value:
            values.append(value)
    return values


def change_groups(obj: Mapping[str, Any]) -> list[str]:
    """Groups the object declares membership of, without duplicates."""
    return list(dict.fromkeys(_matching_values(obj, CHANGE_GROUP)))


def parse_change_rule(rule: str) -> str | None:
    """
    Return the group named by an ``upsert after upserting <group>`` rule.

    Any other rule shape returns None.
    """
    parts = rule.split()
    if len(parts) < 4:
        return None
    action, timing, dependency_type, dependency = parts[:4]
    if (action, timing, dependency_type) != ("upsert", "after", "upserting"):
        return None
    return dependency


def change_dependencies(obj: Mapping[str, Any]) -> list[str]:
    """Groups the object must be upserted after."""
    deps = []
    for rule in _matching_values(obj, CHANGE_RULE):
        dependency = parse_change_rule(rule)
        if dependency is not None and dependency not in deps:
            deps.append(dependency)
    return deps


def sort_groups(
    group_deps: Mapping[str, set[str]], all_groups: Sequence[str]
) -> tuple[list[str], list[str]]:
    """
    Kahn's algorithm over group dependencies.

    Args:
        group_deps: Group -> groups it must come after
        all_groups: Every known group in first-seen order

    Returns:
        (sorted groups, groups left on or behind a cycle)
    """
    in_degree = {group: len(group_deps.get(group, ())) for group in all_groups}
    dependents: dict[str, list[str]] = {group: [] for group in all_groups}
    for group in all_groups:
        for dep in group_deps.get(group, ()):
            dependents[dep].append(group)

    queue = deque(group for group in all_groups if in_degree[group] == 0)
    ordered: list[str] = []
    while queue:
        group = queue.popleft()
        ordered.append(group)
        for dependent in dependents[group]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    done = set(ordered)
    return ordered, [group for group in all_groups if group not in done]


def order_by_change_groups(
    items: Sequence[T],
    key: Callable[[T], Mapping[str, Any]] | None = None,
) -> list[T]:
    """
    Order siblings by their declared change groups.

    Args:
        items: Siblings in original order
        key: Maps an item to its object mapping (identity when omitted)
    """
    obj_of = key or (lambda item: item)  # type: ignore[assignment,return-value]

    node_groups: dict[int, list[str]] = {}
    group_members: dict[str, list[int]] = {}
    group_deps: dict[str, set[str]] = {}
    all_groups: dict[str, None] = {}

    for idx, item in enumerate(items):
        obj = obj_of(item)
        groups = change_groups(obj)
        if not groups:
            continue
        node_groups[idx] = groups
        deps = change_dependencies(obj)
        for group in groups:
            all_groups.setdefault(group)
            group_members.setdefault(group, []).append(idx)
            group_deps.setdefault(group, set()).update(deps)
        for dep in deps:
            all_groups.setdefault(dep)

    if not node_groups:
        return list(items)

    ordered_groups, _unresolved = sort_groups(group_deps, list(all_groups))

    emitted: set[int] = set()
    result: list[T] = []
    for group in ordered_groups:
        for idx in group_members.get(group, []):
            if idx not in emitted:
                emitted.add(idx)
                result.append(items[idx])

    # Grouped siblings stuck on a cycle
    for idx in sorted(node_groups):
        if idx not in emitted:
            emitted.add(idx)
            result.append(items[idx])

    for idx, item in enumerate(items):
        if idx not in emitted:
            result.append(item)
    return result


__all__ = [
    "CHANGE_GROUP",
    "CHANGE_RULE",
    "change_dependencies",
    "change_groups",
    "order_by_change_groups",
    "parse_change_rule",
    "sort_groups",
]
