"""Role store: roles and their permission grants."""

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from rights.core.errors import NotFoundError, ValidationError
from rights.models.role import Role, RolePermission
from rights.services.catalog import CatalogStore
from rights.services.mutations import run_mutation
from rights.services.types import ReplaceResult, normalize_updates

logger = logging.getLogger(__name__)


class RoleStore:
    """Roles are additive capability bundles; grants are replaced as a whole."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_roles(self, include_inactive: bool = True) -> list[Role]:
        query = select(Role).order_by(Role.name)
        if not include_inactive:
            query = query.where(Role.is_active == True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_role(self, role_id: int) -> Role | None:
        result = await self.session.execute(select(Role).where(Role.id == role_id))
        return result.scalar_one_or_none()

    async def _lock_role(self, role_id: int) -> Role:
        result = await self.session.execute(
            select(Role).where(Role.id == role_id).with_for_update()
            .execution_options(populate_existing=True)
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role", role_id)
        return role

    async def _ensure_unique_name(self, name: str, exclude_id: int | None = None) -> None:
        query = select(Role.id).where(Role.name == name)
        if exclude_id is not None:
            query = query.where(Role.id != exclude_id)
        result = await self.session.execute(query)
        if result.first() is not None:
            raise ValidationError(f"Role name '{name}' already exists", role_name=name)

    async def create_role(self, name: str, description: str | None = None) -> Role:
        name = name.strip()
        if not name:
            raise ValidationError("Role name is required")

        async def operation() -> Role:
            await self._ensure_unique_name(name)
            role = Role(name=name, description=description, is_active=True)
            self.session.add(role)
            await self.session.flush()
            return role

        role = await run_mutation(
            self.session, ("role-name", name), operation,
            description=f"Creating role '{name}'", role_name=name,
        )
        logger.info(f"Created role {role.id} ({name})")
        return role

    async def update_role(
        self,
        role_id: int,
        name: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
    ) -> Role:
        """Rename, describe, or (de)activate a role.

        A deactivated role keeps its grants and assignments but drops out of
        every resolution until it is reactivated.
        """
        if name is not None and not name.strip():
            raise ValidationError("Role name cannot be blank", role_id=role_id)

        async def operation() -> Role:
            role = await self._lock_role(role_id)
            if name is not None:
                await self._ensure_unique_name(name.strip(), exclude_id=role_id)
                role.name = name.strip()
            if description is not None:
                role.description = description
            if is_active is not None:
                role.is_active = is_active
            role.updated_at = datetime.utcnow()
            await self.session.flush()
            return role

        role = await run_mutation(
            self.session, ("role", role_id), operation,
            description=f"Updating role {role_id}", role_id=role_id,
        )
        logger.info(f"Updated role {role_id} (active={role.is_active})")
        return role

    async def get_role_permissions(self, role_id: int) -> set[int]:
        """Permission ids the role grants (is_allowed rows only)."""
        result = await self.session.execute(
            select(RolePermission.permission_id).where(
                RolePermission.role_id == role_id, RolePermission.is_allowed == True
            )
        )
        return {row[0] for row in result.all()}

    async def get_role_grants(self, role_id: int) -> dict[int, bool]:
        """Every stored grant row of the role, allowed or not."""
        result = await self.session.execute(
            select(RolePermission.permission_id, RolePermission.is_allowed).where(
                RolePermission.role_id == role_id
            )
        )
        return {row[0]: row[1] for row in result.all()}

    async def get_grants_for_permission(
        self, role_ids: Iterable[int], permission_id: int
    ) -> dict[int, bool]:
        """Grant value of ``permission_id`` for each role in ``role_ids``; absent rows read as False."""
        ids = set(role_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(RolePermission.role_id, RolePermission.is_allowed).where(
                RolePermission.role_id.in_(ids),
                RolePermission.permission_id == permission_id,
            )
        )
        grants = {role_id: False for role_id in ids}
        for role_id, is_allowed in result.all():
            grants[role_id] = bool(is_allowed)
        return grants

    async def get_granted_permission_ids(self, role_ids: Iterable[int]) -> set[int]:
        """Union of permissions granted by any of ``role_ids``."""
        ids = set(role_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(RolePermission.permission_id).where(
                RolePermission.role_id.in_(ids), RolePermission.is_allowed == True
            ).distinct()
        )
        return {row[0] for row in result.all()}

    async def replace_role_permissions(self, role_id: int, grants: Iterable[Any]) -> ReplaceResult:
        """Replace the role's whole grant set in one transaction.

        Args:
            role_id: Role to edit
            grants: ``{permission_id, is_allowed}`` items; each permission at most once

        Returns:
            ReplaceResult with the number of grant rows written

        Raises:
            NotFoundError: unknown role
            ValidationError: malformed, duplicate or unknown permission ids
            StorageError: the store failed; the previous grant set is intact
        """
        updates = normalize_updates(grants)
        catalog = CatalogStore(self.session)

        async def operation() -> ReplaceResult:
            await self._lock_role(role_id)
            wanted = {u.permission_id for u in updates}
            unknown = wanted - await catalog.get_existing_permission_ids(wanted)
            if unknown:
                raise ValidationError(
                    "Grants reference unknown permissions", invalid_ids=unknown, role_id=role_id
                )

            await self.session.execute(
                delete(RolePermission).where(RolePermission.role_id == role_id)
            )
            if updates:
                granted_at = datetime.utcnow()
                await self.session.execute(
                    insert(RolePermission),
                    [
                        {
                            "role_id": role_id,
                            "permission_id": u.permission_id,
                            "is_allowed": u.is_allowed,
                            "granted_at": granted_at,
                        }
                        for u in updates
                    ],
                )
            return ReplaceResult(success=True, rows_affected=len(updates))

        result = await run_mutation(
            self.session, ("role", role_id), operation,
            description=f"Replacing permissions of role {role_id}", role_id=role_id,
        )
        logger.info(f"Replaced grants of role {role_id}: {result.rows_affected} rows")
        return result
