# Database models
from rights.models.user import User
from rights.models.catalog import ActionKey, Page, Permission
from rights.models.role import (
    Role,
    RolePermission,
    UserRole,
    UserPermission,
)

__all__ = [
    "User",
    "ActionKey",
    "Page",
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "UserPermission",
]
