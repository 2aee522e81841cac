"""Catalog store: pages and page-scoped permissions.

Lookups used for authorization only ever see active permissions whose page
is also active. Listing methods used by the settings screens can include
inactive rows so historical grants stay explainable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rights.core.errors import NotFoundError, ValidationError
from rights.models.catalog import ActionKey, Page, Permission
from rights.services.mutations import run_mutation
from rights.services.routes import normalize_route_path, route_matches

logger = logging.getLogger(__name__)


def default_perm_key(page_key: str, action_key: ActionKey) -> str:
    return f"{page_key}:{action_key.value}"


@dataclass
class GenerationResult:
    """Outcome of ``generate_permissions``: (page_key, action_key) pairs."""

    generated: list[tuple[str, str]] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class PageSyncResult:
    """Outcome of ``sync_pages``: page keys inserted or updated, skipped items with a reason."""

    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    skipped: list[tuple[Any, str]] = field(default_factory=list)


class CatalogStore:
    """Reads and administers the page / permission catalog."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Authorization lookups (active entries only)
    # ------------------------------------------------------------------

    @staticmethod
    def _visible_permissions():
        return (
            select(Permission)
            .join(Page, Permission.page_id == Page.id)
            .where(Permission.is_active == True, Page.is_active == True)
        )

    async def get_permission_by_key(self, perm_key: str) -> Permission | None:
        """Active permission with an active page, or None."""
        result = await self.session.execute(
            self._visible_permissions().where(Permission.perm_key == perm_key)
        )
        return result.scalar_one_or_none()

    async def get_permission_by_page_action(
        self, page_key: str, action_key: ActionKey
    ) -> Permission | None:
        result = await self.session.execute(
            self._visible_permissions().where(
                Page.page_key == page_key, Permission.action_key == action_key.value
            )
        )
        return result.scalar_one_or_none()

    async def get_permission_for_page(
        self, page_id: int, action_key: ActionKey
    ) -> Permission | None:
        result = await self.session.execute(
            self._visible_permissions().where(
                Permission.page_id == page_id, Permission.action_key == action_key.value
            )
        )
        return result.scalar_one_or_none()

    async def list_permissions_for_page(self, page_id: int) -> list[Permission]:
        result = await self.session.execute(
            self._visible_permissions()
            .where(Permission.page_id == page_id)
            .order_by(Permission.action_key)
        )
        return list(result.scalars().all())

    async def get_active_permission_keys(self) -> dict[int, str]:
        """Map of permission id to perm_key for every authorization-visible permission."""
        result = await self.session.execute(
            select(Permission.id, Permission.perm_key)
            .join(Page, Permission.page_id == Page.id)
            .where(Permission.is_active == True, Page.is_active == True)
        )
        return {row[0]: row[1] for row in result.all()}

    async def find_page_for_route(self, route_path: str) -> Page | None:
        """Page owning ``route_path``, active or not; the longest matching route wins.

        Inactive pages still own their routes so that deactivating a page
        never hands its routes to a parent page. A page whose route is the
        parent of another page's route (``/dashboard``) owns only its exact
        path, never unregistered sub-routes. Callers check ``is_active``.
        """
        route = normalize_route_path(route_path)
        result = await self.session.execute(select(Page))
        pages = list(result.scalars().all())
        routes = {p.id: normalize_route_path(p.route_path) for p in pages}

        def owns(page: Page) -> bool:
            page_route = routes[page.id]
            if route == page_route:
                return True
            if not route_matches(route, page_route):
                return False
            return not any(
                other != page_route and route_matches(other, page_route)
                for other in routes.values()
            )

        candidates = [p for p in pages if owns(p)]
        if not candidates:
            return None
        return max(candidates, key=lambda p: len(routes[p.id]))

    # ------------------------------------------------------------------
    # Listing (settings screens)
    # ------------------------------------------------------------------

    async def list_pages(self, include_inactive: bool = True) -> list[Page]:
        query = select(Page).order_by(Page.section_key, Page.sort_order, Page.page_name)
        if not include_inactive:
            query = query.where(Page.is_active == True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_page(self, page_id: int) -> Page | None:
        result = await self.session.execute(select(Page).where(Page.id == page_id))
        return result.scalar_one_or_none()

    async def list_permissions(self, include_inactive: bool = True) -> list[Permission]:
        query = (
            select(Permission)
            .join(Page, Permission.page_id == Page.id)
            .options(selectinload(Permission.page))
            .order_by(Page.section_key, Page.page_name, Permission.action_key)
        )
        if not include_inactive:
            query = query.where(Permission.is_active == True, Page.is_active == True)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_existing_permission_ids(self, permission_ids: Iterable[int]) -> set[int]:
        """Subset of ``permission_ids`` present in the catalog, active or not."""
        ids = set(permission_ids)
        if not ids:
            return set()
        result = await self.session.execute(
            select(Permission.id).where(Permission.id.in_(ids))
        )
        return {row[0] for row in result.all()}

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def create_page(
        self,
        page_key: str,
        page_name: str,
        route_path: str,
        section_key: str | None = None,
        sort_order: int | None = None,
        is_active: bool = True,
    ) -> Page:
        page_key = page_key.strip()
        if not page_key or not page_name.strip():
            raise ValidationError("page_key and page_name are required")

        async def operation() -> Page:
            existing = await self.session.execute(select(Page.id).where(Page.page_key == page_key))
            if existing.scalar_one_or_none() is not None:
                raise ValidationError(f"Page key '{page_key}' already exists", page_key=page_key)
            page = Page(
                page_key=page_key,
                page_name=page_name.strip(),
                route_path=normalize_route_path(route_path),
                section_key=section_key,
                sort_order=sort_order,
                is_active=is_active,
            )
            self.session.add(page)
            await self.session.flush()
            return page

        page = await run_mutation(
            self.session, ("page", page_key), operation,
            description=f"Creating page '{page_key}'", page_key=page_key,
        )
        logger.info(f"Created page {page.id} ({page_key})")
        return page

    async def update_page(
        self,
        page_id: int,
        page_name: str | None = None,
        route_path: str | None = None,
        section_key: str | None = None,
        sort_order: int | None = None,
        is_active: bool | None = None,
    ) -> Page:
        """Edit a page. Deactivating hides every permission under it from the resolver."""

        async def operation() -> Page:
            result = await self.session.execute(
                select(Page).where(Page.id == page_id).with_for_update()
                .execution_options(populate_existing=True)
            )
            page = result.scalar_one_or_none()
            if page is None:
                raise NotFoundError("Page", page_id)
            if page_name is not None:
                page.page_name = page_name
            if route_path is not None:
                page.route_path = normalize_route_path(route_path)
            if section_key is not None:
                page.section_key = section_key
            if sort_order is not None:
                page.sort_order = sort_order
            if is_active is not None:
                page.is_active = is_active
            await self.session.flush()
            return page

        page = await run_mutation(
            self.session, ("page", page_id), operation,
            description=f"Updating page {page_id}", page_id=page_id,
        )
        logger.info(f"Updated page {page_id} (active={page.is_active})")
        return page

    async def create_permission(
        self,
        page_id: int,
        action_key: ActionKey | str,
        perm_key: str | None = None,
        is_active: bool = True,
    ) -> Permission:
        try:
            action = ActionKey.parse(action_key)
        except ValueError as e:
            raise ValidationError(str(e), action_key=str(action_key)) from e

        async def operation() -> Permission:
            page = await self.get_page(page_id)
            if page is None:
                raise NotFoundError("Page", page_id)
            key = (perm_key or "").strip() or default_perm_key(page.page_key, action)

            clash = await self.session.execute(
                select(Permission.id).where(
                    (Permission.perm_key == key)
                    | ((Permission.page_id == page_id) & (Permission.action_key == action.value))
                )
            )
            if clash.first() is not None:
                raise ValidationError(
                    f"Permission '{key}' or {page.page_key}/{action.value} already exists",
                    perm_key=key,
                )
            permission = Permission(
                perm_key=key, page_id=page_id, action_key=action.value, is_active=is_active
            )
            self.session.add(permission)
            await self.session.flush()
            return permission

        permission = await run_mutation(
            self.session, ("page", page_id), operation,
            description=f"Creating {action.value} permission on page {page_id}", page_id=page_id,
        )
        logger.info(f"Created permission {permission.id} ({permission.perm_key})")
        return permission

    async def set_permission_active(self, permission_id: int, is_active: bool) -> Permission:
        async def operation() -> Permission:
            result = await self.session.execute(
                select(Permission).where(Permission.id == permission_id).with_for_update()
                .execution_options(populate_existing=True)
            )
            permission = result.scalar_one_or_none()
            if permission is None:
                raise NotFoundError("Permission", permission_id)
            permission.is_active = is_active
            await self.session.flush()
            return permission

        permission = await run_mutation(
            self.session, ("permission", permission_id), operation,
            description=f"Updating permission {permission_id}", permission_id=permission_id,
        )
        logger.info(f"Permission {permission_id} active={is_active}")
        return permission

    async def generate_permissions(self, actions: Iterable[ActionKey | str]) -> GenerationResult:
        """Create the missing (page, action) permissions for every active page.

        Existing pairs are reported as skipped. The whole pass is one transaction.
        """
        try:
            requested = list(dict.fromkeys(ActionKey.parse(a) for a in actions))
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if not requested:
            raise ValidationError("actions must be a non-empty list")

        async def operation() -> GenerationResult:
            outcome = GenerationResult()
            pages = await self.list_pages(include_inactive=False)
            existing = await self.session.execute(select(Permission.page_id, Permission.action_key, Permission.perm_key))
            rows = existing.all()
            taken_pairs = {(row[0], row[1]) for row in rows}
            taken_keys = {row[2] for row in rows}

            for page in pages:
                for action in requested:
                    key = default_perm_key(page.page_key, action)
                    if (page.id, action.value) in taken_pairs or key in taken_keys:
                        outcome.skipped.append((page.page_key, action.value))
                        continue
                    self.session.add(
                        Permission(perm_key=key, page_id=page.id, action_key=action.value, is_active=True)
                    )
                    taken_keys.add(key)
                    outcome.generated.append((page.page_key, action.value))
            await self.session.flush()
            return outcome

        outcome = await run_mutation(
            self.session, ("catalog",), operation, description="Generating permissions",
        )
        logger.info(
            f"Generated {len(outcome.generated)} permissions, skipped {len(outcome.skipped)}"
        )
        return outcome

    async def sync_pages(self, pages: Iterable[Any]) -> PageSyncResult:
        """Upsert pages from the application's route registry in one transaction.

        Each item needs ``page_key``, ``page_name`` and ``route_path``; items
        missing any of them are skipped. An item matching an existing page by
        key or by route updates that page and reactivates it, anything else
        is inserted. Page keys of existing pages are never renamed.
        """

        def read(item: Any, name: str) -> Any:
            if isinstance(item, Mapping):
                return item.get(name)
            return getattr(item, name, None)

        async def operation() -> PageSyncResult:
            outcome = PageSyncResult()
            for item in pages:
                page_key = (read(item, "page_key") or "").strip()
                page_name = (read(item, "page_name") or "").strip()
                raw_route = (read(item, "route_path") or "").strip()
                if not page_key or not page_name or not raw_route:
                    outcome.skipped.append((item, "Missing required fields"))
                    continue
                route = normalize_route_path(raw_route)

                result = await self.session.execute(
                    select(Page)
                    .where((Page.page_key == page_key) | (Page.route_path == route))
                    .order_by(Page.id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
                page = result.scalars().first()
                if page is None:
                    self.session.add(
                        Page(
                            page_key=page_key,
                            page_name=page_name,
                            route_path=route,
                            section_key=read(item, "section_key"),
                            sort_order=read(item, "sort_order"),
                            is_active=True,
                        )
                    )
                    outcome.inserted.append(page_key)
                else:
                    page.page_name = page_name
                    page.route_path = route
                    page.section_key = read(item, "section_key")
                    page.sort_order = read(item, "sort_order")
                    page.is_active = True
                    outcome.updated.append(page.page_key)
                await self.session.flush()
            return outcome

        outcome = await run_mutation(
            self.session, ("catalog",), operation, description="Syncing pages",
        )
        logger.info(
            f"Synced pages: {len(outcome.inserted)} inserted, {len(outcome.updated)} updated, "
            f"{len(outcome.skipped)} skipped"
        )
        return outcome
