from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from rights.core.database import get_db
from rights.core.errors import RightsError
from rights.models.catalog import ActionKey
from rights.schemas.rights import (
    PermissionGrant,
    ReplaceResponse,
    ReplaceRolePermissionsRequest,
    RoleCreate,
    RoleGrantsResponse,
    RoleResponse,
    RoleUpdate,
)
from rights.services.roles import RoleStore
from rights.api.deps import require_settings, to_http_exception

router = APIRouter(prefix="/api/settings/roles", tags=["roles"])


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    include_inactive: bool = Query(True, description="Include deactivated roles"),
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    """List roles"""
    roles = await RoleStore(db).list_roles(include_inactive=include_inactive)
    return [RoleResponse.model_validate(r) for r in roles]


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: int,
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    role = await RoleStore(db).get_role(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return RoleResponse.model_validate(role)


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    current_user: int = Depends(require_settings(ActionKey.CREATE)),
    db: AsyncSession = Depends(get_db),
):
    """Create a role"""
    try:
        role = await RoleStore(db).create_role(role_data.name, role_data.description)
    except RightsError as e:
        raise to_http_exception(e)
    return RoleResponse.model_validate(role)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    """Update a role; setting is_active to false deactivates it"""
    try:
        role = await RoleStore(db).update_role(
            role_id,
            name=role_data.name,
            description=role_data.description,
            is_active=role_data.is_active,
        )
    except RightsError as e:
        raise to_http_exception(e)
    return RoleResponse.model_validate(role)


# ==================== Grants ====================


@router.get("/{role_id}/permissions", response_model=RoleGrantsResponse)
async def get_role_permissions(
    role_id: int,
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    """Stored grant rows of a role (allowed and explicitly denied)"""
    store = RoleStore(db)
    if not await store.get_role(role_id):
        raise HTTPException(status_code=404, detail="Role not found")
    grants = await store.get_role_grants(role_id)
    return RoleGrantsResponse(
        role_id=role_id,
        grants=[
            PermissionGrant(permission_id=pid, is_allowed=allowed)
            for pid, allowed in sorted(grants.items())
        ],
    )


@router.put("/{role_id}/permissions", response_model=ReplaceResponse)
async def replace_role_permissions(
    role_id: int,
    payload: ReplaceRolePermissionsRequest,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    """Replace the role's entire grant set atomically"""
    try:
        result = await RoleStore(db).replace_role_permissions(role_id, payload.grants)
    except RightsError as e:
        raise to_http_exception(e)
    return ReplaceResponse.model_validate(result)
