"""Permission resolver.

Decides whether a user may perform one permission by composing the catalog,
role and assignment stores under a fixed precedence:

1. The permission must be an active catalog entry on an active page.
2. A per-user override row, if present, decides alone (allow or deny).
3. Otherwise the user is allowed if any assigned, active role grants it.
4. Anything else is a deny.

The resolver is read-only and never raises for a denied or misconfigured
check. Store errors, driver connection errors and timeouts resolve to
deny. Decisions are memoized for the lifetime of one resolver instance,
which the HTTP layer creates per request.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Hashable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rights.core.config import settings
from rights.core.errors import ConfigurationError, StorageError
from rights.models.catalog import ActionKey, Permission
from rights.models.role import Role
from rights.services.assignments import AssignmentStore
from rights.services.catalog import CatalogStore
from rights.services.roles import RoleStore
from rights.services.routes import infer_action_for_route, normalize_route_path
from rights.services.types import AccessDecision, DecisionSource

logger = logging.getLogger(__name__)


def combine(override: bool | None, role_grants: Mapping[int, bool]) -> AccessDecision:
    """Apply the precedence rule to already-fetched evidence.

    Args:
        override: The user's override for the permission, or None if there is none
        role_grants: Grant value per assigned active role (absent grant -> False)
    """
    if override is not None:
        return AccessDecision(allowed=override, source=DecisionSource.OVERRIDE)
    granting = tuple(sorted(role_id for role_id, allowed in role_grants.items() if allowed))
    if granting:
        return AccessDecision(allowed=True, source=DecisionSource.ROLE, role_ids=granting)
    return AccessDecision.deny(DecisionSource.DEFAULT)


@dataclass
class UserAccess:
    """Everything that feeds a user's decisions, for the settings screens."""

    user_id: int
    roles: list[Role] = field(default_factory=list)
    role_permissions: set[str] = field(default_factory=set)
    overrides: dict[str, bool] = field(default_factory=dict)
    effective: set[str] = field(default_factory=set)


class PermissionResolver:
    """Read path answering "may this user do this?"."""

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = settings.RESOLVE_TIMEOUT_SECONDS if timeout is None else timeout
        self.catalog = CatalogStore(session)
        self.roles = RoleStore(session)
        self.assignments = AssignmentStore(session)
        self._memo: dict[Hashable, AccessDecision] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def resolve(self, user_id: int, permission_key: str) -> bool:
        return (await self.explain(user_id, permission_key)).allowed

    async def explain(self, user_id: int, permission_key: str) -> AccessDecision:
        """Resolve ``permission_key`` for ``user_id`` and report why."""

        async def evaluate() -> AccessDecision:
            permission = await self.catalog.get_permission_by_key(permission_key)
            if permission is None:
                return self._misconfigured(
                    f"Permission key '{permission_key}' is not an active catalog entry",
                    permission_key, permission_key=permission_key,
                )
            return await self._decide(user_id, permission)

        return await self._guarded(("key", user_id, permission_key), evaluate, permission_key)

    async def resolve_action(self, user_id: int, page_key: str, action_key: ActionKey | str) -> bool:
        return (await self.explain_action(user_id, page_key, action_key)).allowed

    async def explain_action(
        self, user_id: int, page_key: str, action_key: ActionKey | str
    ) -> AccessDecision:
        label = f"{page_key}/{action_key}"
        try:
            action = ActionKey.parse(action_key)
        except ValueError:
            return self._misconfigured(
                f"Action key '{action_key}' is outside the action vocabulary",
                label, page_key=page_key, action_key=str(action_key),
            )

        async def evaluate() -> AccessDecision:
            permission = await self.catalog.get_permission_by_page_action(page_key, action)
            if permission is None:
                return self._misconfigured(
                    f"No active {action.value} permission on page '{page_key}'",
                    label, page_key=page_key, action_key=action.value,
                )
            return await self._decide(user_id, permission)

        return await self._guarded(("action", user_id, page_key, action), evaluate, label)

    async def resolve_route(
        self, user_id: int, route_path: str, action_key: ActionKey | str | None = None
    ) -> bool:
        return (await self.explain_route(user_id, route_path, action_key)).allowed

    async def explain_route(
        self, user_id: int, route_path: str, action_key: ActionKey | str | None = None
    ) -> AccessDecision:
        """Resolve the page owning ``route_path``; infer the action from the route when not given."""
        route = normalize_route_path(route_path)
        try:
            action = ActionKey.parse(action_key) if action_key else infer_action_for_route(route)
        except ValueError:
            return self._misconfigured(
                f"Action key '{action_key}' is outside the action vocabulary",
                route, route=route, action_key=str(action_key),
            )

        async def evaluate() -> AccessDecision:
            page = await self.catalog.find_page_for_route(route)
            if page is None:
                return self._misconfigured(f"No page owns route '{route}'", route, route=route)
            if not page.is_active:
                return self._misconfigured(
                    f"Route '{route}' belongs to inactive page '{page.page_key}'",
                    route, route=route, page_key=page.page_key,
                )
            permission = await self.catalog.get_permission_for_page(page.id, action)
            if permission is None:
                return self._misconfigured(
                    f"No active {action.value} permission on page '{page.page_key}'",
                    route, route=route, action_key=action.value,
                )
            return await self._decide(user_id, permission)

        return await self._guarded(("route", user_id, route, action), evaluate, route)

    async def list_effective_permissions(self, user_id: int) -> set[str]:
        """Keys of every permission the user is currently allowed. Empty on store failure."""
        try:
            return await asyncio.wait_for(self._effective(user_id), self.timeout)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Effective permissions of user {user_id} unavailable, returning none: {e!r}")
            return set()

    async def describe_user_access(self, user_id: int) -> UserAccess:
        """Roles, role grants, overrides and effective keys for one user.

        Raises:
            StorageError: the store failed (this is an admin read, not a guard)
        """
        try:
            keys = await self.catalog.get_active_permission_keys()
            roles = await self.assignments.list_user_roles(user_id)
            active_ids = {r.id for r in roles if r.is_active}
            granted = await self.roles.get_granted_permission_ids(active_ids)
            overrides = await self.assignments.get_user_permission_overrides(user_id)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Reading access of user {user_id} failed", user_id=user_id) from e

        return UserAccess(
            user_id=user_id,
            roles=roles,
            role_permissions={keys[p] for p in granted if p in keys},
            overrides={keys[p]: allowed for p, allowed in overrides.items() if p in keys},
            effective=self._effective_keys(keys, overrides, granted),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _guarded(
        self,
        memo_key: Hashable,
        evaluate: Callable[[], Awaitable[AccessDecision]],
        label: str,
    ) -> AccessDecision:
        if memo_key in self._memo:
            return self._memo[memo_key]
        try:
            decision = await asyncio.wait_for(evaluate(), self.timeout)
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            # Transient: not memoized, the next call retries the store
            logger.error(f"Denying {label} for user {memo_key[1]}: store unavailable ({e!r})")
            return AccessDecision.deny(DecisionSource.ERROR, label)
        self._memo[memo_key] = decision
        logger.debug(f"User {memo_key[1]} {label}: {decision.source.value} -> {decision.allowed}")
        return decision

    async def _decide(self, user_id: int, permission: Permission) -> AccessDecision:
        override = await self.assignments.get_user_permission_override(user_id, permission.id)
        if override is not None:
            decision = combine(override, {})
        else:
            role_ids = await self.assignments.get_active_user_roles(user_id)
            grants = await self.roles.get_grants_for_permission(role_ids, permission.id)
            decision = combine(None, grants)
        return AccessDecision(
            allowed=decision.allowed,
            source=decision.source,
            permission_key=permission.perm_key,
            role_ids=decision.role_ids,
        )

    def _misconfigured(self, message: str, label: str, **context) -> AccessDecision:
        error = ConfigurationError(message, **context)
        logger.warning(f"Configuration error, denying: {error}")
        return AccessDecision.deny(DecisionSource.CONFIGURATION, label)

    async def _effective(self, user_id: int) -> set[str]:
        keys = await self.catalog.get_active_permission_keys()
        overrides = await self.assignments.get_user_permission_overrides(user_id)
        role_ids = await self.assignments.get_active_user_roles(user_id)
        granted = await self.roles.get_granted_permission_ids(role_ids)
        return self._effective_keys(keys, overrides, granted)

    @staticmethod
    def _effective_keys(
        keys: Mapping[int, str], overrides: Mapping[int, bool], granted: set[int]
    ) -> set[str]:
        return {
            key
            for permission_id, key in keys.items()
            if (overrides[permission_id] if permission_id in overrides else permission_id in granted)
        }
