"""
Kind registry: a finite mapping from kind identifier to how it is watched
and how it relates to other kinds.

Kind identifiers are ``<group>/<Kind>`` with ``core`` standing in for the
empty API group, e.g. ``core/Pod``, ``apps/Deployment``,
``bitnami.com/SealedSecret``. The registry is resolved once and handed to
sessions and graph builds instead of branching on kind strings ad hoc.

Example:
    >>> registry = KindRegistry.default()
    >>> registry.watch_path("apps/Deployment", namespace="web")
    '/apis/apps/v1/namespaces/web/deployments?watch=true'
    >>> kind_of({"apiVersion": "v1", "kind": "Pod"})
    'core/Pod'
"""

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kubemirror.core.config.models import DEFAULT_HIDDEN_KINDS

# (child, parent) -> does this child belong to this parent
MatchFn = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]


class KindSpec(BaseModel):
    """How one kind is addressed on the control plane."""

    model_config = ConfigDict(frozen=True)

    kind_id: str = Field(..., description="Kind identifier, e.g. 'apps/Deployment'")
    api_path: str = Field(..., description="API prefix, e.g. '/apis/apps/v1'")
    plural: str = Field(..., description="Resource plural, e.g. 'deployments'")
    namespaced: bool = Field(default=True, description="Whether objects live in namespaces")

    @property
    def kind(self) -> str:
        """Bare kind name without the group."""
        return self.kind_id.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class RelationshipPredicate:
    """
    Infers a parent/child edge between two mirrored objects.

    Attributes:
        parent_kind: Kind identifier of the parent, e.g. ``apps/Deployment``
        child_kind: Kind identifier of the child, e.g. ``apps/ReplicaSet``
        match: Called as ``match(child, parent)``
    """

    parent_kind: str
    child_kind: str
    match: MatchFn


def kind_of(obj: Mapping[str, Any]) -> str:
    """
    Derive the kind identifier of an object from ``apiVersion`` and ``kind``.

    Returns an empty string when either field is missing.
    """
    api_version = obj.get("apiVersion") or ""
    kind = obj.get("kind") or ""
    if not api_version or not kind:
        return ""
    group = "core" if "/" not in api_version else api_version.split("/", 1)[0]
    return f"{group}/{kind}"


# =============================================================================
# Relationship predicates
# =============================================================================


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _spec(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    spec = obj.get("spec")
    return spec if isinstance(spec, Mapping) else {}


def owned_by(owner_kind: str):
    """Predicate matching children whose ownerReferences name the parent."""

    def match(child: Mapping[str, Any], parent: Mapping[str, Any]) -> bool:
        parent_name = _metadata(parent).get("name")
        for ref in _metadata(child).get("ownerReferences") or []:
            if ref.get("kind") == owner_kind and ref.get("name") == parent_name:
                return True
        return False

    return match


def claimed_by(child: Mapping[str, Any], parent: Mapping[str, Any]) -> bool:
    """A PersistentVolume whose claimRef names the parent claim."""
    claim_ref = _spec(child).get("claimRef") or {}
    return bool(claim_ref) and claim_ref.get("name") == _metadata(parent).get("name")


def same_name_and_namespace(child: Mapping[str, Any], parent: Mapping[str, Any]) -> bool:
    """A Secret unsealed from the parent SealedSecret."""
    child_meta, parent_meta = _metadata(child), _metadata(parent)
    return child_meta.get("name") == parent_meta.get("name") and (
        child_meta.get("namespace") == parent_meta.get("namespace")
    )


def scale_target_of(child: Mapping[str, Any], parent: Mapping[str, Any]) -> bool:
    """A Deployment named by the parent ScaledObject's scaleTargetRef."""
    target = _spec(parent).get("scaleTargetRef") or {}
    return target.get("kind", "Deployment") == "Deployment" and (
        target.get("name") == _metadata(child).get("name")
    )


DEFAULT_PREDICATES: tuple[RelationshipPredicate, ...] = (
    RelationshipPredicate("apps/Deployment", "apps/ReplicaSet", owned_by("Deployment")),
    RelationshipPredicate("apps/ReplicaSet", "core/Pod", owned_by("ReplicaSet")),
    RelationshipPredicate("core/PersistentVolumeClaim", "core/PersistentVolume", claimed_by),
    RelationshipPredicate("batch/CronJob", "batch/Job", owned_by("CronJob")),
    RelationshipPredicate("bitnami.com/SealedSecret", "core/Secret", same_name_and_namespace),
    RelationshipPredicate("keda.sh/ScaledJob", "batch/Job", owned_by("ScaledJob")),
    RelationshipPredicate("keda.sh/ScaledObject", "apps/Deployment", scale_target_of),
)


# =============================================================================
# Registry
# =============================================================================

_BUILTIN_KINDS: tuple[KindSpec, ...] = (
    KindSpec(kind_id="core/Pod", api_path="/api/v1", plural="pods"),
    KindSpec(kind_id="core/Service", api_path="/api/v1", plural="services"),
    KindSpec(kind_id="core/ConfigMap", api_path="/api/v1", plural="configmaps"),
    KindSpec(kind_id="core/Secret", api_path="/api/v1", plural="secrets"),
    KindSpec(kind_id="core/ServiceAccount", api_path="/api/v1", plural="serviceaccounts"),
    KindSpec(
        kind_id="core/PersistentVolumeClaim", api_path="/api/v1", plural="persistentvolumeclaims"
    ),
    KindSpec(
        kind_id="core/PersistentVolume",
        api_path="/api/v1",
        plural="persistentvolumes",
        namespaced=False,
    ),
    KindSpec(kind_id="core/Namespace", api_path="/api/v1", plural="namespaces", namespaced=False),
    KindSpec(kind_id="apps/Deployment", api_path="/apis/apps/v1", plural="deployments"),
    KindSpec(kind_id="apps/ReplicaSet", api_path="/apis/apps/v1", plural="replicasets"),
    KindSpec(kind_id="apps/StatefulSet", api_path="/apis/apps/v1", plural="statefulsets"),
    KindSpec(kind_id="apps/DaemonSet", api_path="/apis/apps/v1", plural="daemonsets"),
    KindSpec(kind_id="batch/Job", api_path="/apis/batch/v1", plural="jobs"),
    KindSpec(kind_id="batch/CronJob", api_path="/apis/batch/v1", plural="cronjobs"),
    KindSpec(
        kind_id="rbac.authorization.k8s.io/Role",
        api_path="/apis/rbac.authorization.k8s.io/v1",
        plural="roles",
    ),
    KindSpec(
        kind_id="rbac.authorization.k8s.io/RoleBinding",
        api_path="/apis/rbac.authorization.k8s.io/v1",
        plural="rolebindings",
    ),
    KindSpec(
        kind_id="rbac.authorization.k8s.io/ClusterRole",
        api_path="/apis/rbac.authorization.k8s.io/v1",
        plural="clusterroles",
        namespaced=False,
    ),
    KindSpec(
        kind_id="rbac.authorization.k8s.io/ClusterRoleBinding",
        api_path="/apis/rbac.authorization.k8s.io/v1",
        plural="clusterrolebindings",
        namespaced=False,
    ),
    KindSpec(
        kind_id="bitnami.com/SealedSecret",
        api_path="/apis/bitnami.com/v1alpha1",
        plural="sealedsecrets",
    ),
    KindSpec(kind_id="keda.sh/ScaledJob", api_path="/apis/keda.sh/v1alpha1", plural="scaledjobs"),
    KindSpec(
        kind_id="keda.sh/ScaledObject", api_path="/apis/keda.sh/v1alpha1", plural="scaledobjects"
    ),
    KindSpec(
        kind_id="kustomize.toolkit.fluxcd.io/Kustomization",
        api_path="/apis/kustomize.toolkit.fluxcd.io/v1",
        plural="kustomizations",
    ),
    KindSpec(
        kind_id="helm.toolkit.fluxcd.io/HelmRelease",
        api_path="/apis/helm.toolkit.fluxcd.io/v2",
        plural="helmreleases",
    ),
)


class KindRegistry:
    """
    Kind specs, relationship predicates and the default hidden set.

    Attributes:
        predicates: Relationship predicates in evaluation order
        hidden_kinds: Kinds hidden from graphs unless overridden
    """

    def __init__(
        self,
        kinds: Iterable[KindSpec] = (),
        predicates: Iterable[RelationshipPredicate] = (),
        hidden_kinds: Iterable[str] = (),
    ) -> None:
        self._kinds: dict[str, KindSpec] = {}
        for spec in kinds:
            self.register(spec)
        self.predicates: list[RelationshipPredicate] = list(predicates)
        self.hidden_kinds: set[str] = set(hidden_kinds)

    @classmethod
    def default(cls) -> "KindRegistry":
        """Registry with the built-in kinds, predicates and hidden kinds."""
        return cls(_BUILTIN_KINDS, DEFAULT_PREDICATES, DEFAULT_HIDDEN_KINDS)

    def register(self, spec: KindSpec) -> None:
        """Add or replace a kind."""
        self._kinds[spec.kind_id] = spec

    def get(self, kind_id: str) -> KindSpec:
        """
        Look up a kind.

        Raises:
            KeyError: If the kind is not registered
        """
        try:
            return self._kinds[kind_id]
        except KeyError:
            raise KeyError(f"Unknown kind: {kind_id}") from None

    def __contains__(self, kind_id: object) -> bool:
        return kind_id in self._kinds

    def __iter__(self) -> Iterator[KindSpec]:
        return iter(self._kinds.values())

    def __len__(self) -> int:
        return len(self._kinds)

    def watch_path(self, kind_id: str, namespace: str | None = None) -> str:
        """
        Build the change-stream path for a kind, optionally scoped to a namespace.

        Namespaces are ignored for cluster-scoped kinds.
        """
        spec = self.get(kind_id)
        if spec.namespaced and namespace:
            return f"{spec.api_path}/namespaces/{namespace}/{spec.plural}?watch=true"
        return f"{spec.api_path}/{spec.plural}?watch=true"

    def predicates_for_parent(self, kind_id: str) -> list[RelationshipPredicate]:
        return [p for p in self.predicates if p.parent_kind == kind_id]

    def related_kinds(self, kind_id: str) -> list[str]:
        """Every kind reachable from ``kind_id`` through the predicates."""
        seen: list[str] = []
        stack = [kind_id]
        while stack:
            current = stack.pop()
            for predicate in self.predicates_for_parent(current):
                if predicate.child_kind not in seen and predicate.child_kind != kind_id:
                    seen.append(predicate.child_kind)
                    stack.append(predicate.child_kind)
        return seen


__all__ = [
    "DEFAULT_PREDICATES",
    "KindRegistry",
    "KindSpec",
    "MatchFn",
    "RelationshipPredicate",
    "claimed_by",
    "kind_of",
    "owned_by",
    "same_name_and_namespace",
    "scale_target_of",
]
