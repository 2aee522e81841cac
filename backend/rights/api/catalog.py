from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from rights.core.database import get_db
from rights.core.errors import RightsError
from rights.models.catalog import ActionKey, Permission
from rights.schemas.rights import (
    GeneratePermissionsRequest,
    GeneratePermissionsResponse,
    PageCreate,
    PageResponse,
    PageSyncRequest,
    PageSyncResponse,
    PageSyncSkipped,
    PageUpdate,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
)
from rights.services.catalog import CatalogStore
from rights.api.deps import require_settings, to_http_exception

router = APIRouter(prefix="/api/settings", tags=["catalog"])


def _permission_response(permission: Permission, page_key: str | None = None, page_name: str | None = None) -> PermissionResponse:
    return PermissionResponse(
        id=permission.id,
        perm_key=permission.perm_key,
        page_id=permission.page_id,
        action_key=permission.action_key,
        is_active=permission.is_active,
        page_key=page_key,
        page_name=page_name,
    )


# ==================== Pages ====================


@router.get("/pages", response_model=List[PageResponse])
async def list_pages(
    include_inactive: bool = Query(True),
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    pages = await CatalogStore(db).list_pages(include_inactive=include_inactive)
    return [PageResponse.model_validate(p) for p in pages]


@router.post("/pages", response_model=PageResponse, status_code=status.HTTP_201_CREATED)
async def create_page(
    page_data: PageCreate,
    current_user: int = Depends(require_settings(ActionKey.CREATE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        page = await CatalogStore(db).create_page(**page_data.model_dump())
    except RightsError as e:
        raise to_http_exception(e)
    return PageResponse.model_validate(page)


@router.post("/pages/sync", response_model=PageSyncResponse)
async def sync_pages(
    payload: PageSyncRequest,
    current_user: int = Depends(require_settings(ActionKey.CREATE)),
    db: AsyncSession = Depends(get_db),
):
    """Upsert pages by key or route; matched pages are reactivated"""
    try:
        outcome = await CatalogStore(db).sync_pages(payload.pages)
    except RightsError as e:
        raise to_http_exception(e)
    return PageSyncResponse(
        success=True,
        inserted=len(outcome.inserted),
        updated=len(outcome.updated),
        skipped=len(outcome.skipped),
        inserted_keys=outcome.inserted,
        updated_keys=outcome.updated,
        skipped_items=[PageSyncSkipped(page=item, reason=reason) for item, reason in outcome.skipped],
    )


@router.put("/pages/{page_id}", response_model=PageResponse)
async def update_page(
    page_id: int,
    page_data: PageUpdate,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    """Edit a page; is_active=false hides all of its permissions from authorization"""
    try:
        page = await CatalogStore(db).update_page(page_id, **page_data.model_dump())
    except RightsError as e:
        raise to_http_exception(e)
    return PageResponse.model_validate(page)


# ==================== Permissions ====================


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    include_inactive: bool = Query(True),
    current_user: int = Depends(require_settings(ActionKey.VIEW)),
    db: AsyncSession = Depends(get_db),
):
    permissions = await CatalogStore(db).list_permissions(include_inactive=include_inactive)
    return [_permission_response(p, p.page.page_key, p.page.page_name) for p in permissions]


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    perm: PermissionCreate,
    current_user: int = Depends(require_settings(ActionKey.CREATE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        permission = await CatalogStore(db).create_permission(
            perm.page_id, perm.action_key, perm.perm_key, perm.is_active
        )
    except RightsError as e:
        raise to_http_exception(e)
    return _permission_response(permission)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: int,
    perm: PermissionUpdate,
    current_user: int = Depends(require_settings(ActionKey.UPDATE)),
    db: AsyncSession = Depends(get_db),
):
    try:
        permission = await CatalogStore(db).set_permission_active(permission_id, perm.is_active)
    except RightsError as e:
        raise to_http_exception(e)
    return _permission_response(permission)


@router.post("/permissions/generate", response_model=GeneratePermissionsResponse)
async def generate_permissions(
    payload: GeneratePermissionsRequest,
    current_user: int = Depends(require_settings(ActionKey.CREATE)),
    db: AsyncSession = Depends(get_db),
):
    """Create missing (page, action) permissions for every active page"""
    try:
        outcome = await CatalogStore(db).generate_permissions(payload.actions)
    except RightsError as e:
        raise to_http_exception(e)
    return GeneratePermissionsResponse(
        generated=len(outcome.generated),
        skipped=len(outcome.skipped),
        generated_pairs=[list(p) for p in outcome.generated],
        skipped_pairs=[list(p) for p in outcome.skipped],
    )
