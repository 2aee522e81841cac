from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from rights.core.database import get_db
from rights.core.errors import RightsError
from rights.models.catalog import ActionKey
from rights.schemas.rights import (
    OverrideBatchResponse,
    OverrideUpdatesRequest,
    PermissionGrant,
    RemoveOverridesRequest,
    ReplaceResponse,
    ReplaceUserRolesRequest,
    RoleResponse,
    UserAccessResponse,
    UserOverridesResponse,
    UserResponse,
    UserRolesResponse,
)
from rights.services.assignments import AssignmentStore
from rights.services.resolver import PermissionResolver
from rights.api.deps import get_resolver, require_settings, to_http_exception

router = APIRouter(prefix="/api/settings/users", tags=["users"])


async def _existing_user(store: AssignmentStore, user_id: int) -> None:
    if not await store.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")


@router.get("", response_model=List[UserResponse])
async def list_users(
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    users = await AssignmentStore(db).list_users()
    return [UserResponse.model_validate(u) for u in users]


# ==================== Roles ====================


@router.get("/{user_id}/roles", response_model=UserRolesResponse)
async def get_user_roles(
    user_id: int,
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    store = AssignmentStore(db)
    await _existing_user(store, user_id)
    roles = await store.list_user_roles(user_id)
    return UserRolesResponse(
        user_id=user_id, roles=[RoleResponse.model_validate(r) for r in roles]
    )


@router.put("/{user_id}/roles", response_model=ReplaceResponse)
async def replace_user_roles(
    user_id: int,
    payload: ReplaceUserRolesRequest,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    """Replace the user's role set atomically; an empty list removes every role"""
    try:
        result = await AssignmentStore(db).replace_user_roles(user_id, payload.role_ids)
    except RightsError as e:
        raise to_http_exception(e)
    return ReplaceResponse.model_validate(result)


# ==================== Overrides ====================


@router.get("/{user_id}/permissions", response_model=UserOverridesResponse)
async def get_user_permissions(
    user_id: int,
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    """Override rows of a user; permissions without a row follow the user's roles"""
    store = AssignmentStore(db)
    await _existing_user(store, user_id)
    overrides = await store.get_user_permission_overrides(user_id)
    return UserOverridesResponse(
        user_id=user_id,
        overrides=[
            PermissionGrant(permission_id=pid, is_allowed=allowed)
            for pid, allowed in sorted(overrides.items())
        ],
    )


@router.put("/{user_id}/permissions", response_model=OverrideBatchResponse)
async def set_user_permissions(
    user_id: int,
    payload: OverrideUpdatesRequest,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    """Upsert overrides; unmentioned overrides are kept"""
    try:
        result = await AssignmentStore(db).set_user_permission_overrides(user_id, payload.updates)
    except RightsError as e:
        raise to_http_exception(e)
    if not result.success:
        raise HTTPException(
            status_code=422,
            detail=OverrideBatchResponse.model_validate(result).model_dump(mode="json"),
        )
    return OverrideBatchResponse.model_validate(result)


@router.delete("/{user_id}/permissions", response_model=OverrideBatchResponse)
async def remove_user_permissions(
    user_id: int,
    payload: RemoveOverridesRequest,
    current_user: int = Depends(require_settings(ActionKey.DELETE)),
    db: AsyncSession = Depends(get_db),
):
    """Drop overrides so the user falls back to role grants"""
    try:
        result = await AssignmentStore(db).remove_user_permission_overrides(
            user_id, payload.permission_ids
        )
    except RightsError as e:
        raise to_http_exception(e)
    return OverrideBatchResponse.model_validate(result)


@router.get("/{user_id}/access", response_model=UserAccessResponse)
async def get_user_access(
    user_id: int,
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """Roles, role grants, overrides and the resulting effective permissions"""
    await _existing_user(resolver.assignments, user_id)
    try:
        access = await resolver.describe_user_access(user_id)
    except RightsError as e:
        raise to_http_exception(e)
    return UserAccessResponse(
        user_id=user_id,
        roles=[RoleResponse.model_validate(r) for r in access.roles],
        role_permissions=sorted(access.role_permissions),
        overrides=access.overrides,
        effective=sorted(access.effective),
    )
