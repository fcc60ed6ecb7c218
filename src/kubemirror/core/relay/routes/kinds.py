"""
Kind registry routes for the relay.

Lets a UI discover what it can subscribe to:
- GET /kinds - Every registered kind with its watch path
- GET /kinds/{group}/{kind} - One kind, e.g. /kinds/apps/Deployment
"""

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from kubemirror.core.kinds import KindRegistry, KindSpec

router = APIRouter()

# DNS-1123 label, as the control plane requires for namespace names
NAMESPACE_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"


class KindInfo(BaseModel):
    """A registered kind as seen by a subscribing client."""

    kind_id: str
    api_path: str
    plural: str
    namespaced: bool
    watch_path: str
    children: list[str]
    hidden: bool


def _info(registry: KindRegistry, spec: KindSpec, namespace: str | None) -> KindInfo:
    return KindInfo(
        kind_id=spec.kind_id,
        api_path=spec.api_path,
        plural=spec.plural,
        namespaced=spec.namespaced,
        watch_path=registry.watch_path(spec.kind_id, namespace),
        children=[p.child_kind for p in registry.predicates_for_parent(spec.kind_id)],
        hidden=spec.kind_id in registry.hidden_kinds,
    )


@router.get("/kinds", response_model=list[KindInfo])
async def list_kinds(
    request: Request,
    namespace: str | None = Query(None, max_length=63, pattern=NAMESPACE_PATTERN),
) -> list[KindInfo]:
    """List registered kinds, with watch paths scoped to ``namespace`` when given."""
    registry: KindRegistry = request.app.state.registry
    return [
        _info(registry, spec, namespace) for spec in sorted(registry, key=lambda s: s.kind_id)
    ]


@router.get("/kinds/{group}/{kind}", response_model=KindInfo)
async def get_kind(
    request: Request,
    group: str,
    kind: str,
    namespace: str | None = Query(None, max_length=63, pattern=NAMESPACE_PATTERN),
) -> KindInfo:
    """
    Describe one kind.

    Raises:
        HTTPException: 404 if the kind is not registered
    """
    registry: KindRegistry = request.app.state.registry
    kind_id = f"{group}/{kind}"
    if kind_id not in registry:
        raise HTTPException(status_code=404, detail=f"Unknown kind: {kind_id}")
    return _info(registry, registry.get(kind_id), namespace)
