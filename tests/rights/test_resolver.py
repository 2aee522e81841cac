"""Tests for permission resolution."""

import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.exc import OperationalError

from rights.models import ActionKey
from rights.services.assignments import AssignmentStore
from rights.services.resolver import PermissionResolver, combine
from rights.services.roles import RoleStore
from rights.services.types import DecisionSource


async def make_role(db, name, grants):
    store = RoleStore(db)
    role = await store.create_role(name)
    await store.replace_role_permissions(role.id, list(grants.items()))
    return role


async def assign(db, user, *roles):
    await AssignmentStore(db).replace_user_roles(user.id, [r.id for r in roles])


# ==================== combine ====================


def test_combine_override_wins_over_roles():
    assert combine(False, {1: True, 2: True}).allowed is False
    assert combine(True, {}).source is DecisionSource.OVERRIDE


def test_combine_is_or_over_roles():
    decision = combine(None, {1: False, 2: True, 3: True})

    assert decision.allowed is True
    assert decision.source is DecisionSource.ROLE
    assert decision.role_ids == (2, 3)


def test_combine_default_deny():
    assert combine(None, {}).source is DecisionSource.DEFAULT
    assert combine(None, {1: False}).allowed is False


# ==================== Scenarios ====================


@pytest.mark.asyncio
async def test_single_role_grant_and_explicit_false(db, users, perm_ids):
    user = users[0]
    mentor = await make_role(
        db, "Mentor", {perm_ids["baseline-qol:View"]: True, perm_ids["baseline-qol:Update"]: False}
    )
    await assign(db, user, mentor)
    resolver = PermissionResolver(db)

    assert await resolver.resolve(user.id, "baseline-qol:View") is True
    assert await resolver.resolve(user.id, "baseline-qol:Update") is False


@pytest.mark.asyncio
async def test_any_role_granting_is_enough(db, users, perm_ids):
    user = users[0]
    update = perm_ids["baseline-qol:Update"]
    mentor = await make_role(db, "Mentor", {update: False})
    editor = await make_role(db, "Editor", {update: True})
    await assign(db, user, mentor, editor)

    decision = await PermissionResolver(db).explain(user.id, "baseline-qol:Update")

    assert decision.allowed is True
    assert decision.source is DecisionSource.ROLE
    assert decision.role_ids == (editor.id,)


@pytest.mark.asyncio
async def test_false_override_beats_role_grant(db, users, perm_ids):
    user = users[0]
    delete = perm_ids["rops:Delete"]
    admin = await make_role(db, "Admin", {delete: True})
    await assign(db, user, admin)
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(delete, False)])

    decision = await PermissionResolver(db).explain(user.id, "rops:Delete")

    assert decision.allowed is False
    assert decision.source is DecisionSource.OVERRIDE
    assert decision.permission_key == "rops:Delete"


@pytest.mark.asyncio
async def test_true_override_grants_without_roles(db, users, perm_ids):
    user = users[1]
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["reports:View"], True)])

    assert await PermissionResolver(db).resolve(user.id, "reports:View") is True


@pytest.mark.asyncio
async def test_removing_override_falls_back_to_roles(db, users, perm_ids):
    user = users[0]
    view = perm_ids["rops:View"]
    await assign(db, user, await make_role(db, "Viewer", {view: True}))
    store = AssignmentStore(db)
    await store.set_user_permission_overrides(user.id, [(view, False)])
    assert await PermissionResolver(db).resolve(user.id, "rops:View") is False

    await store.remove_user_permission_overrides(user.id, [view])

    assert await PermissionResolver(db).resolve(user.id, "rops:View") is True


# ==================== Default deny ====================


@pytest.mark.asyncio
async def test_user_without_roles_or_overrides_is_denied_everything(db, users, catalog):
    user = users[2]
    resolver = PermissionResolver(db)

    for key in (await catalog.get_active_permission_keys()).values():
        decision = await resolver.explain(user.id, key)
        assert decision.allowed is False
        assert decision.source is DecisionSource.DEFAULT
    assert await resolver.list_effective_permissions(user.id) == set()


@pytest.mark.asyncio
async def test_unknown_permission_key_is_denied(db, users, perm_ids):
    user = users[0]
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["rops:View"], True)])

    decision = await PermissionResolver(db).explain(user.id, "ViewEverything")

    assert decision.allowed is False
    assert decision.source is DecisionSource.CONFIGURATION


@pytest.mark.asyncio
async def test_deactivated_page_denies_even_with_grant_and_override(db, users, catalog, perm_ids):
    user = users[0]
    view = perm_ids["rops:View"]
    await assign(db, user, await make_role(db, "Finance", {view: True}))
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["rops:Create"], True)])
    assert await PermissionResolver(db).resolve(user.id, "rops:View") is True

    rops = await catalog.find_page_for_route("/dashboard/rops")
    await catalog.update_page(rops.id, is_active=False)
    resolver = PermissionResolver(db)

    assert await resolver.resolve(user.id, "rops:View") is False
    assert await resolver.resolve(user.id, "rops:Create") is False
    assert (await resolver.explain(user.id, "rops:View")).source is DecisionSource.CONFIGURATION
    assert await resolver.list_effective_permissions(user.id) == set()


@pytest.mark.asyncio
async def test_deactivated_permission_is_denied(db, users, catalog, perm_ids):
    user = users[0]
    view = perm_ids["rops:View"]
    await assign(db, user, await make_role(db, "Finance", {view: True}))

    await catalog.set_permission_active(view, False)

    assert await PermissionResolver(db).resolve(user.id, "rops:View") is False


@pytest.mark.asyncio
async def test_deactivated_role_no_longer_grants(db, users, perm_ids):
    user = users[0]
    view = perm_ids["rops:View"]
    role = await make_role(db, "Finance", {view: True})
    await assign(db, user, role)

    await RoleStore(db).update_role(role.id, is_active=False)

    decision = await PermissionResolver(db).explain(user.id, "rops:View")
    assert decision.allowed is False
    assert decision.source is DecisionSource.DEFAULT


# ==================== Page / action and routes ====================


@pytest.mark.asyncio
async def test_resolve_action_by_page_and_action(db, users, perm_ids):
    user = users[0]
    await assign(db, user, await make_role(db, "Mentor", {perm_ids["baseline-qol:Update"]: True}))
    resolver = PermissionResolver(db)

    assert await resolver.resolve_action(user.id, "baseline-qol", ActionKey.UPDATE) is True
    assert await resolver.resolve_action(user.id, "baseline-qol", "update") is True
    assert await resolver.resolve_action(user.id, "baseline-qol", "View") is False


@pytest.mark.asyncio
async def test_resolve_action_unknown_action_or_page(db, users, catalog):
    resolver = PermissionResolver(db)

    unknown_action = await resolver.explain_action(users[0].id, "baseline-qol", "Approve")
    unknown_page = await resolver.explain_action(users[0].id, "payroll", ActionKey.VIEW)

    assert unknown_action.source is DecisionSource.CONFIGURATION
    assert unknown_page.source is DecisionSource.CONFIGURATION
    assert not unknown_action.allowed and not unknown_page.allowed


@pytest.mark.asyncio
async def test_resolve_route_infers_action(db, users, perm_ids):
    user = users[0]
    await assign(
        db, user,
        await make_role(db, "Loans", {perm_ids["loan-process:View"]: True, perm_ids["loan-process:Create"]: False}),
    )
    resolver = PermissionResolver(db)

    assert await resolver.resolve_route(user.id, "/dashboard/finance/loan-process/") is True
    assert await resolver.resolve_route(user.id, "/dashboard/finance/loan-process/add") is False
    assert await resolver.resolve_route(user.id, "/dashboard/finance/loan-process/add", "View") is True


@pytest.mark.asyncio
async def test_resolve_route_without_owning_page(db, users, catalog):
    decision = await PermissionResolver(db).explain_route(users[0].id, "/login")

    assert decision.allowed is False
    assert decision.source is DecisionSource.CONFIGURATION


@pytest.mark.asyncio
async def test_parent_page_grant_does_not_cover_child_routes(db, users, perm_ids):
    user = users[0]
    await assign(db, user, await make_role(db, "Home", {perm_ids["dashboard:View"]: True}))
    resolver = PermissionResolver(db)

    assert await resolver.resolve_route(user.id, "/dashboard") is True
    assert await resolver.resolve_route(user.id, "/dashboard/rops") is False

    unregistered = await resolver.explain_route(user.id, "/dashboard/user-management")
    assert unregistered.allowed is False
    assert unregistered.source is DecisionSource.CONFIGURATION


@pytest.mark.asyncio
async def test_route_of_deactivated_page_is_denied_not_handed_to_parent(db, users, catalog, perm_ids):
    user = users[0]
    await assign(db, user, await make_role(db, "Home", {perm_ids["dashboard:View"]: True}))
    rops = await catalog.find_page_for_route("/dashboard/rops")
    await catalog.update_page(rops.id, is_active=False)

    decision = await PermissionResolver(db).explain_route(user.id, "/dashboard/rops")

    assert decision.allowed is False
    assert decision.source is DecisionSource.CONFIGURATION


# ==================== Effective permissions ====================


@pytest.mark.asyncio
async def test_list_effective_permissions_applies_overrides(db, users, perm_ids):
    user = users[0]
    await assign(
        db, user,
        await make_role(db, "Mentor", {perm_ids["baseline-qol:View"]: True, perm_ids["baseline-qol:Update"]: True}),
    )
    await AssignmentStore(db).set_user_permission_overrides(
        user.id, [(perm_ids["baseline-qol:Update"], False), (perm_ids["documents:View"], True)]
    )

    effective = await PermissionResolver(db).list_effective_permissions(user.id)

    assert effective == {"baseline-qol:View", "documents:View"}


@pytest.mark.asyncio
async def test_describe_user_access(db, users, perm_ids):
    user = users[0]
    mentor = await make_role(db, "Mentor", {perm_ids["baseline-qol:View"]: True})
    await assign(db, user, mentor)
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["baseline-qol:View"], False)])

    access = await PermissionResolver(db).describe_user_access(user.id)

    assert [r.name for r in access.roles] == ["Mentor"]
    assert access.role_permissions == {"baseline-qol:View"}
    assert access.overrides == {"baseline-qol:View": False}
    assert access.effective == set()


# ==================== Failure handling ====================


@pytest.mark.asyncio
async def test_storage_error_denies_and_is_not_memoized(db, users, perm_ids):
    user = users[0]
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["rops:View"], True)])
    resolver = PermissionResolver(db)
    failure = OperationalError("SELECT", {}, Exception("database is locked"))

    with patch.object(resolver.catalog, "get_permission_by_key", AsyncMock(side_effect=failure)):
        decision = await resolver.explain(user.id, "rops:View")

    assert decision.allowed is False
    assert decision.source is DecisionSource.ERROR
    assert await resolver.resolve(user.id, "rops:View") is True


@pytest.mark.asyncio
async def test_connection_error_denies_and_is_not_memoized(db, users, perm_ids):
    user = users[0]
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["rops:View"], True)])
    resolver = PermissionResolver(db)
    refused = AsyncMock(side_effect=ConnectionRefusedError("db down"))

    with patch.object(resolver.catalog, "get_permission_by_key", refused):
        decision = await resolver.explain(user.id, "rops:View")
    with patch.object(resolver.catalog, "find_page_for_route", refused):
        route_decision = await resolver.explain_route(user.id, "/dashboard/rops")

    assert decision.allowed is False
    assert decision.source is DecisionSource.ERROR
    assert route_decision.source is DecisionSource.ERROR
    assert await resolver.resolve(user.id, "rops:View") is True


@pytest.mark.asyncio
async def test_timeout_denies(db, users, perm_ids):
    user = users[0]
    await AssignmentStore(db).set_user_permission_overrides(user.id, [(perm_ids["rops:View"], True)])
    resolver = PermissionResolver(db, timeout=0.01)

    async def slow_lookup(*args, **kwargs):
        await asyncio.sleep(1)

    with patch.object(resolver.assignments, "get_user_permission_override", side_effect=slow_lookup):
        decision = await resolver.explain(user.id, "rops:View")

    assert decision.allowed is False
    assert decision.source is DecisionSource.ERROR


@pytest.mark.asyncio
async def test_effective_permissions_empty_on_storage_error(db, users):
    resolver = PermissionResolver(db)
    failure = OperationalError("SELECT", {}, Exception("no such table"))

    with patch.object(resolver.catalog, "get_active_permission_keys", AsyncMock(side_effect=failure)):
        assert await resolver.list_effective_permissions(users[0].id) == set()


@pytest.mark.asyncio
async def test_effective_permissions_empty_on_connection_error(db, users):
    resolver = PermissionResolver(db)

    with patch.object(
        resolver.assignments, "get_user_permission_overrides", AsyncMock(side_effect=OSError("connection reset"))
    ):
        assert await resolver.list_effective_permissions(users[0].id) == set()


# ==================== Memoization ====================


@pytest.mark.asyncio
async def test_decisions_are_memoized_per_resolver(db, users, perm_ids):
    user = users[0]
    store = AssignmentStore(db)
    await store.set_user_permission_overrides(user.id, [(perm_ids["rops:View"], True)])
    resolver = PermissionResolver(db)

    with patch.object(
        resolver.assignments,
        "get_user_permission_override",
        wraps=resolver.assignments.get_user_permission_override,
    ) as lookup:
        assert await resolver.resolve(user.id, "rops:View") is True
        assert await resolver.resolve(user.id, "rops:View") is True
    assert lookup.await_count == 1

    # A fresh resolver, as created for the next request, sees the mutation
    await store.set_user_permission_overrides(user.id, [(perm_ids["rops:View"], False)])
    assert await PermissionResolver(db).resolve(user.id, "rops:View") is False
