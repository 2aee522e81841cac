"""Assignment store: user-role assignments and per-user permission overrides."""

import logging
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rights.core.errors import NotFoundError, ValidationError
from rights.models.role import Role, UserPermission, UserRole
from rights.models.user import User
from rights.services.catalog import CatalogStore
from rights.services.mutations import run_mutation
from rights.services.types import (
    ItemStatus,
    OverrideBatchResult,
    OverrideItemResult,
    ReplaceResult,
    normalize_updates,
)

logger = logging.getLogger(__name__)


def _normalize_role_ids(role_ids: Iterable[Any]) -> list[int]:
    """Positive integer ids in first-seen order, duplicates collapsed."""
    ids: list[int] = []
    bad: list[str] = []
    for raw in role_ids:
        try:
            role_id = int(raw)
        except (TypeError, ValueError):
            bad.append(str(raw))
            continue
        if role_id <= 0 or isinstance(raw, bool):
            bad.append(str(raw))
            continue
        ids.append(role_id)
    if bad:
        raise ValidationError("Role ids must be positive integers", invalid_ids=bad)
    return list(dict.fromkeys(ids))


class AssignmentStore:
    """Reads and edits which roles and overrides apply to a user."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def list_users(self) -> list[User]:
        result = await self.session.execute(select(User).order_by(User.email_address))
        return list(result.scalars().all())

    async def _lock_user(self, user_id: int) -> User:
        result = await self.session.execute(
            select(User).where(User.id == user_id).with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def get_user_roles(self, user_id: int) -> set[int]:
        """Every assigned role id, active or not."""
        result = await self.session.execute(
            select(UserRole.role_id).where(UserRole.user_id == user_id)
        )
        return {row[0] for row in result.all()}

    async def get_active_user_roles(self, user_id: int) -> set[int]:
        """Assigned role ids whose role is active; deactivated roles read as unassigned."""
        result = await self.session.execute(
            select(UserRole.role_id)
            .join(Role, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.is_active == True)
        )
        return {row[0] for row in result.all()}

    async def list_user_roles(self, user_id: int) -> list[Role]:
        result = await self.session.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        return list(result.scalars().all())

    async def replace_user_roles(self, user_id: int, role_ids: Iterable[Any]) -> ReplaceResult:
        """Replace the user's role set in one transaction.

        Raises:
            NotFoundError: unknown user
            ValidationError: any role id unknown or inactive; nothing is written
            StorageError: the store failed; the previous role set is intact
        """
        ids = _normalize_role_ids(role_ids)

        async def operation() -> ReplaceResult:
            await self._lock_user(user_id)
            if ids:
                result = await self.session.execute(
                    select(Role.id).where(Role.id.in_(ids), Role.is_active == True)
                )
                valid = {row[0] for row in result.all()}
                invalid = set(ids) - valid
                if invalid:
                    raise ValidationError(
                        "Role ids are unknown or inactive", invalid_ids=invalid, user_id=user_id
                    )

            await self.session.execute(delete(UserRole).where(UserRole.user_id == user_id))
            if ids:
                assigned_at = datetime.utcnow()
                await self.session.execute(
                    insert(UserRole),
                    [{"user_id": user_id, "role_id": role_id, "assigned_at": assigned_at} for role_id in ids],
                )
            return ReplaceResult(success=True, rows_affected=len(ids))

        result = await run_mutation(
            self.session, ("user", user_id), operation,
            description=f"Replacing roles of user {user_id}", user_id=user_id,
        )
        logger.info(f"Replaced roles of user {user_id}: {ids}")
        return result

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    async def get_user_permission_overrides(self, user_id: int) -> dict[int, bool]:
        """Only the overridden permissions; a missing key means no override."""
        result = await self.session.execute(
            select(UserPermission.permission_id, UserPermission.is_allowed).where(
                UserPermission.user_id == user_id
            )
        )
        return {row[0]: row[1] for row in result.all()}

    async def get_user_permission_override(self, user_id: int, permission_id: int) -> bool | None:
        """The override value, or None when no override row exists.

        ``False`` is an explicit deny and must never be confused with ``None``.
        """
        result = await self.session.execute(
            select(UserPermission.is_allowed).where(
                UserPermission.user_id == user_id,
                UserPermission.permission_id == permission_id,
            )
        )
        row = result.first()
        return None if row is None else bool(row[0])

    async def set_user_permission_overrides(
        self, user_id: int, updates: Iterable[Any]
    ) -> OverrideBatchResult:
        """Upsert each ``{permission_id, is_allowed}`` override in one transaction.

        Overrides not named in ``updates`` are left untouched. If any item
        references an unknown permission the batch writes nothing and the
        result marks that item ``invalid`` and the rest ``not_applied``.

        Raises:
            NotFoundError: unknown user
            ValidationError: malformed or duplicate items
            StorageError: the store failed; nothing was applied
        """
        items = normalize_updates(updates)
        catalog = CatalogStore(self.session)

        async def operation() -> OverrideBatchResult:
            await self._lock_user(user_id)
            wanted = [u.permission_id for u in items]
            known = await catalog.get_existing_permission_ids(wanted)
            if len(known) != len(set(wanted)):
                return OverrideBatchResult(
                    success=False,
                    results=[
                        OverrideItemResult(u.permission_id, ItemStatus.NOT_APPLIED)
                        if u.permission_id in known
                        else OverrideItemResult(u.permission_id, ItemStatus.INVALID, "unknown permission")
                        for u in items
                    ],
                )

            existing = set(await self.get_user_permission_overrides(user_id)) & set(wanted)
            now = datetime.utcnow()
            results: list[OverrideItemResult] = []
            for item in items:
                if item.permission_id in existing:
                    await self.session.execute(
                        update(UserPermission)
                        .where(
                            UserPermission.user_id == user_id,
                            UserPermission.permission_id == item.permission_id,
                        )
                        .values(is_allowed=item.is_allowed, assigned_at=now)
                    )
                    results.append(OverrideItemResult(item.permission_id, ItemStatus.UPDATED))
                else:
                    await self.session.execute(
                        insert(UserPermission).values(
                            user_id=user_id,
                            permission_id=item.permission_id,
                            is_allowed=item.is_allowed,
                            assigned_at=now,
                        )
                    )
                    results.append(OverrideItemResult(item.permission_id, ItemStatus.INSERTED))
            return OverrideBatchResult(success=True, results=results)

        result = await run_mutation(
            self.session, ("user", user_id), operation,
            description=f"Setting permission overrides of user {user_id}", user_id=user_id,
        )
        if result.success:
            logger.info(f"Applied {len(result.results)} overrides for user {user_id}")
        else:
            logger.warning(f"Rejected override batch for user {user_id}: invalid {result.failed}")
        return result

    async def remove_user_permission_overrides(
        self, user_id: int, permission_ids: Iterable[Any]
    ) -> OverrideBatchResult:
        """Delete override rows so the user falls back to role grants."""
        try:
            ids = list(dict.fromkeys(int(p) for p in permission_ids))
        except (TypeError, ValueError) as e:
            raise ValidationError("Permission ids must be integers", user_id=user_id) from e

        async def operation() -> OverrideBatchResult:
            await self._lock_user(user_id)
            present = set(await self.get_user_permission_overrides(user_id)) & set(ids)
            if present:
                await self.session.execute(
                    delete(UserPermission).where(
                        UserPermission.user_id == user_id,
                        UserPermission.permission_id.in_(present),
                    )
                )
            return OverrideBatchResult(
                success=True,
                results=[
                    OverrideItemResult(p, ItemStatus.REMOVED if p in present else ItemStatus.ABSENT)
                    for p in ids
                ],
            )

        result = await run_mutation(
            self.session, ("user", user_id), operation,
            description=f"Removing permission overrides of user {user_id}", user_id=user_id,
        )
        logger.info(f"Removed overrides of user {user_id}: {[r.permission_id for r in result.results if r.status == ItemStatus.REMOVED]}")
        return result
