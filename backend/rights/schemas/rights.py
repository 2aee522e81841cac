from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from rights.core.flags import to_flag
from rights.models.catalog import ActionKey
from rights.services.types import DecisionSource, ItemStatus

FlagField = Annotated[bool, BeforeValidator(to_flag)]


# ==================== Page Schemas ====================

class PageCreate(BaseModel):
    page_key: str = Field(min_length=1, max_length=100)
    page_name: str = Field(min_length=1, max_length=200)
    route_path: str = Field(min_length=1, max_length=300)
    section_key: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: FlagField = True


class PageUpdate(BaseModel):
    page_name: Optional[str] = None
    route_path: Optional[str] = None
    section_key: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[FlagField] = None


class PageSyncItem(BaseModel):
    page_key: Optional[str] = None
    page_name: Optional[str] = None
    route_path: Optional[str] = None
    section_key: Optional[str] = None
    sort_order: Optional[int] = None


class PageSyncRequest(BaseModel):
    pages: List[PageSyncItem]


class PageSyncSkipped(BaseModel):
    page: PageSyncItem
    reason: str


class PageSyncResponse(BaseModel):
    success: bool
    inserted: int
    updated: int
    skipped: int
    inserted_keys: List[str] = []
    updated_keys: List[str] = []
    skipped_items: List[PageSyncSkipped] = []


class PageResponse(BaseModel):
    id: int
    page_key: str
    page_name: str
    route_path: str
    section_key: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Permission Schemas ====================

class PermissionCreate(BaseModel):
    page_id: int = Field(gt=0)
    action_key: ActionKey
    perm_key: Optional[str] = None
    is_active: FlagField = True


class PermissionUpdate(BaseModel):
    is_active: FlagField


class PermissionResponse(BaseModel):
    id: int
    perm_key: str
    page_id: int
    action_key: str
    is_active: bool
    page_key: Optional[str] = None
    page_name: Optional[str] = None

    class Config:
        from_attributes = True


class GeneratePermissionsRequest(BaseModel):
    actions: List[ActionKey] = Field(min_length=1)


class GeneratePermissionsResponse(BaseModel):
    generated: int
    skipped: int
    generated_pairs: List[List[str]] = []
    skipped_pairs: List[List[str]] = []


# ==================== Role Schemas ====================

class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[FlagField] = None


class RoleResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ==================== Grant / Override Payloads ====================

class PermissionGrant(BaseModel):
    """One explicit ``{permission_id, is_allowed}`` pair."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    permission_id: int = Field(gt=0)
    is_allowed: FlagField


class ReplaceRolePermissionsRequest(BaseModel):
    grants: List[PermissionGrant]


class RoleGrantsResponse(BaseModel):
    role_id: int
    grants: List[PermissionGrant]


class ReplaceUserRolesRequest(BaseModel):
    role_ids: List[int]


class UserRolesResponse(BaseModel):
    user_id: int
    roles: List[RoleResponse]


class OverrideUpdatesRequest(BaseModel):
    updates: List[PermissionGrant]


class RemoveOverridesRequest(BaseModel):
    permission_ids: List[int] = Field(min_length=1)


class UserOverridesResponse(BaseModel):
    user_id: int
    overrides: List[PermissionGrant]


class ReplaceResponse(BaseModel):
    success: bool
    rows_affected: int

    class Config:
        from_attributes = True


class OverrideItemResponse(BaseModel):
    permission_id: int
    status: ItemStatus
    success: bool
    error: Optional[str] = None

    class Config:
        from_attributes = True


class OverrideBatchResponse(BaseModel):
    success: bool
    results: List[OverrideItemResponse]

    class Config:
        from_attributes = True


# ==================== User Schemas ====================

class UserResponse(BaseModel):
    id: int
    email_address: str
    full_name: Optional[str] = None
    user_type: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class UserAccessResponse(BaseModel):
    user_id: int
    roles: List[RoleResponse]
    role_permissions: List[str]
    overrides: dict[str, bool]
    effective: List[str]


# ==================== Access Checks ====================

class AccessCheckResponse(BaseModel):
    permission: str
    allowed: bool
    source: DecisionSource


class RouteCheckResponse(BaseModel):
    route: str
    action: Optional[str] = None
    has_access: bool
    source: DecisionSource


class EffectivePermissionsResponse(BaseModel):
    user_id: int
    permissions: List[str]
