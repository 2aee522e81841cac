from fastapi import APIRouter, Depends, Query
from rights.models.catalog import ActionKey
from rights.schemas.rights import (
    AccessCheckResponse,
    EffectivePermissionsResponse,
    RouteCheckResponse,
)
from rights.services.resolver import PermissionResolver
from rights.services.routes import infer_action_for_route, normalize_route_path
from rights.api.deps import get_current_user_id, get_resolver

router = APIRouter(prefix="/api/access", tags=["access"])


@router.get("/check", response_model=AccessCheckResponse)
async def check_permission(
    permission: str = Query(..., min_length=1, description="Permission key, e.g. baseline-qol:View"),
    user_id: int = Depends(get_current_user_id),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Whether the caller holds a permission"""
    decision = await resolver.explain(user_id, permission)
    return AccessCheckResponse(
        permission=permission, allowed=decision.allowed, source=decision.source
    )


@router.get("/check-route", response_model=RouteCheckResponse)
async def check_route_permission(
    route: str = Query(..., min_length=1),
    action: str | None = Query(None),
    user_id: int = Depends(get_current_user_id),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Whether the caller may open a route; the action defaults from the route"""
    decision = await resolver.explain_route(user_id, route, action)
    path = normalize_route_path(route)
    if action:
        try:
            evaluated = ActionKey.parse(action).value
        except ValueError:
            evaluated = action
    else:
        evaluated = infer_action_for_route(path).value
    return RouteCheckResponse(
        route=path,
        action=evaluated,
        has_access=decision.allowed,
        source=decision.source,
    )


@router.get("/me", response_model=EffectivePermissionsResponse)
async def my_permissions(
    user_id: int = Depends(get_current_user_id),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Effective permission keys of the caller, for showing and hiding UI affordances"""
    permissions = await resolver.list_effective_permissions(user_id)
    return EffectivePermissionsResponse(user_id=user_id, permissions=sorted(permissions))
