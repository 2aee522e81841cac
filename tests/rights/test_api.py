"""HTTP tests for the access and settings endpoints."""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from rights.core.database import get_db
from rights.main import app
from rights.models import ActionKey
from rights.services.assignments import AssignmentStore
from rights.services.roles import RoleStore


@pytest_asyncio.fixture
async def admin_setup(db, users, perm_ids):
    """users[2] administers settings; users[0] is a mentor with baseline View only"""
    roles = RoleStore(db)
    administrator = await roles.create_role("Administrator")
    await roles.replace_role_permissions(
        administrator.id, [(perm_ids[f"settings:{a.value}"], True) for a in ActionKey]
    )
    mentor = await roles.create_role("Mentor")
    await roles.replace_role_permissions(mentor.id, [(perm_ids["baseline-qol:View"], True)])

    assignments = AssignmentStore(db)
    await assignments.replace_user_roles(users[2].id, [administrator.id])
    await assignments.replace_user_roles(users[0].id, [mentor.id])
    return {"admin": users[2], "mentor": users[0], "editor": users[1], "mentor_role": mentor}


@pytest_asyncio.fixture
async def client(session_maker, admin_setup):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        del app.dependency_overrides[get_db]


def as_user(user):
    return {"X-User-Id": str(user.id)}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_root_reports_service_info(client):
    response = await client.get("/")
    body = response.json()

    assert response.status_code == 200
    assert body["status"] == "running"
    assert body["docs"] == "/docs"
    assert "endpoints" not in body


# ==================== Access checks ====================


@pytest.mark.asyncio
async def test_check_requires_identity(client):
    response = await client.get("/api/access/check", params={"permission": "baseline-qol:View"})
    assert response.status_code == 401

    response = await client.get(
        "/api/access/check", params={"permission": "baseline-qol:View"}, headers={"X-User-Id": "abc"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_check_permission(client, admin_setup):
    mentor = as_user(admin_setup["mentor"])

    allowed = await client.get("/api/access/check", params={"permission": "baseline-qol:View"}, headers=mentor)
    denied = await client.get("/api/access/check", params={"permission": "baseline-qol:Update"}, headers=mentor)
    unknown = await client.get("/api/access/check", params={"permission": "nope:View"}, headers=mentor)

    assert allowed.json() == {"permission": "baseline-qol:View", "allowed": True, "source": "role"}
    assert denied.json()["allowed"] is False
    assert denied.json()["source"] == "default"
    assert unknown.json()["source"] == "configuration"


@pytest.mark.asyncio
async def test_check_route(client, admin_setup):
    mentor = as_user(admin_setup["mentor"])

    view = await client.get(
        "/api/access/check-route", params={"route": "/dashboard/baseline-qol/"}, headers=mentor
    )
    add = await client.get(
        "/api/access/check-route", params={"route": "/dashboard/baseline-qol/add"}, headers=mentor
    )

    assert view.json() == {
        "route": "/dashboard/baseline-qol",
        "action": "View",
        "has_access": True,
        "source": "role",
    }
    assert add.json()["action"] == "Create"
    assert add.json()["has_access"] is False


@pytest.mark.asyncio
async def test_check_route_reports_canonical_action(client, admin_setup):
    mentor = as_user(admin_setup["mentor"])

    lower = await client.get(
        "/api/access/check-route",
        params={"route": "/dashboard/baseline-qol", "action": "view"},
        headers=mentor,
    )
    padded = await client.get(
        "/api/access/check-route",
        params={"route": "/dashboard/baseline-qol", "action": " DELETE "},
        headers=mentor,
    )

    assert lower.json()["action"] == "View"
    assert lower.json()["has_access"] is True
    assert padded.json()["action"] == "Delete"
    assert padded.json()["has_access"] is False


@pytest.mark.asyncio
async def test_my_permissions(client, admin_setup):
    response = await client.get("/api/access/me", headers=as_user(admin_setup["mentor"]))

    assert response.status_code == 200
    assert response.json() == {"user_id": admin_setup["mentor"].id, "permissions": ["baseline-qol:View"]}


# ==================== Guards ====================


@pytest.mark.asyncio
async def test_settings_guarded_by_settings_permissions(client, admin_setup):
    response = await client.get("/api/settings/roles", headers=as_user(admin_setup["mentor"]))
    assert response.status_code == 403

    response = await client.get("/api/settings/roles", headers=as_user(admin_setup["admin"]))
    assert response.status_code == 200
    assert {r["name"] for r in response.json()} == {"Administrator", "Mentor"}


# ==================== Roles ====================


@pytest.mark.asyncio
async def test_role_lifecycle(client, admin_setup, perm_ids):
    admin = as_user(admin_setup["admin"])

    created = await client.post("/api/settings/roles", json={"name": "Editor"}, headers=admin)
    assert created.status_code == 201
    role_id = created.json()["id"]

    duplicate = await client.post("/api/settings/roles", json={"name": "Editor"}, headers=admin)
    assert duplicate.status_code == 422

    update = perm_ids["baseline-qol:Update"]
    replaced = await client.put(
        f"/api/settings/roles/{role_id}/permissions",
        json={"grants": [{"permission_id": update, "is_allowed": "Yes"}]},
        headers=admin,
    )
    assert replaced.json() == {"success": True, "rows_affected": 1}

    grants = await client.get(f"/api/settings/roles/{role_id}/permissions", headers=admin)
    assert grants.json() == {"role_id": role_id, "grants": [{"permission_id": update, "is_allowed": True}]}

    deactivated = await client.put(f"/api/settings/roles/{role_id}", json={"is_active": False}, headers=admin)
    assert deactivated.json()["is_active"] is False


@pytest.mark.asyncio
async def test_replace_role_permissions_unknown_permission(client, admin_setup):
    role_id = admin_setup["mentor_role"].id

    response = await client.put(
        f"/api/settings/roles/{role_id}/permissions",
        json={"grants": [{"permission_id": 8080, "is_allowed": True}]},
        headers=as_user(admin_setup["admin"]),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["invalid_ids"] == [8080]


@pytest.mark.asyncio
async def test_unknown_role_is_404(client, admin_setup):
    admin = as_user(admin_setup["admin"])

    assert (await client.get("/api/settings/roles/999", headers=admin)).status_code == 404
    response = await client.put("/api/settings/roles/999/permissions", json={"grants": []}, headers=admin)
    assert response.status_code == 404


# ==================== Users ====================


@pytest.mark.asyncio
async def test_user_roles_and_access(client, admin_setup):
    admin = as_user(admin_setup["admin"])
    editor = admin_setup["editor"]
    role_id = admin_setup["mentor_role"].id

    replaced = await client.put(
        f"/api/settings/users/{editor.id}/roles", json={"role_ids": [role_id]}, headers=admin
    )
    assert replaced.json() == {"success": True, "rows_affected": 1}

    roles = await client.get(f"/api/settings/users/{editor.id}/roles", headers=admin)
    assert [r["name"] for r in roles.json()["roles"]] == ["Mentor"]

    access = await client.get(f"/api/settings/users/{editor.id}/access", headers=admin)
    assert access.json()["effective"] == ["baseline-qol:View"]

    invalid = await client.put(
        f"/api/settings/users/{editor.id}/roles", json={"role_ids": [role_id, 999]}, headers=admin
    )
    assert invalid.status_code == 422
    assert invalid.json()["detail"]["invalid_ids"] == [999]

    cleared = await client.put(f"/api/settings/users/{editor.id}/roles", json={"role_ids": []}, headers=admin)
    assert cleared.json()["rows_affected"] == 0


@pytest.mark.asyncio
async def test_user_overrides(client, admin_setup, perm_ids):
    admin = as_user(admin_setup["admin"])
    mentor = admin_setup["mentor"]
    view = perm_ids["baseline-qol:View"]
    base = f"/api/settings/users/{mentor.id}/permissions"

    applied = await client.put(base, json={"updates": [{"permission_id": view, "is_allowed": False}]}, headers=admin)
    assert applied.status_code == 200
    assert applied.json()["results"][0]["status"] == "inserted"

    check = await client.get("/api/access/check", params={"permission": "baseline-qol:View"}, headers=as_user(mentor))
    assert check.json()["allowed"] is False
    assert check.json()["source"] == "override"

    listed = await client.get(base, headers=admin)
    assert listed.json()["overrides"] == [{"permission_id": view, "is_allowed": False}]

    rejected = await client.put(
        base,
        json={"updates": [{"permission_id": view, "is_allowed": True}, {"permission_id": 777, "is_allowed": True}]},
        headers=admin,
    )
    assert rejected.status_code == 422
    assert [r["status"] for r in rejected.json()["detail"]["results"]] == ["not_applied", "invalid"]

    removed = await client.request("DELETE", base, json={"permission_ids": [view]}, headers=admin)
    assert removed.json()["results"] == [
        {"permission_id": view, "status": "removed", "success": True, "error": None}
    ]

    check = await client.get("/api/access/check", params={"permission": "baseline-qol:View"}, headers=as_user(mentor))
    assert check.json()["source"] == "role"


@pytest.mark.asyncio
async def test_unknown_user_is_404(client, admin_setup):
    admin = as_user(admin_setup["admin"])

    assert (await client.get("/api/settings/users/999/access", headers=admin)).status_code == 404
    response = await client.put("/api/settings/users/999/roles", json={"role_ids": []}, headers=admin)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_users(client, admin_setup):
    response = await client.get("/api/settings/users", headers=as_user(admin_setup["admin"]))

    assert [u["email_address"] for u in response.json()] == [
        "admin@example.org",
        "editor@example.org",
        "mentor@example.org",
    ]


# ==================== Catalog ====================


@pytest.mark.asyncio
async def test_pages_and_generate(client, admin_setup):
    admin = as_user(admin_setup["admin"])

    created = await client.post(
        "/api/settings/pages",
        json={"page_key": "audit-log", "page_name": "Audit Log", "route_path": "/dashboard/audit-log/", "is_active": "1"},
        headers=admin,
    )
    assert created.status_code == 201
    assert created.json()["route_path"] == "/dashboard/audit-log"

    generated = await client.post(
        "/api/settings/permissions/generate", json={"actions": ["View", "Delete"]}, headers=admin
    )
    body = generated.json()
    assert body["generated_pairs"] == [["audit-log", "View"], ["audit-log", "Delete"]]
    assert body["generated"] == 2

    permissions = await client.get("/api/settings/permissions", headers=admin)
    audit = [p for p in permissions.json() if p["page_key"] == "audit-log"]
    assert {p["perm_key"] for p in audit} == {"audit-log:View", "audit-log:Delete"}

    page_id = created.json()["id"]
    deactivated = await client.put(f"/api/settings/pages/{page_id}", json={"is_active": False}, headers=admin)
    assert deactivated.json()["is_active"] is False


@pytest.mark.asyncio
async def test_sync_pages(client, admin_setup):
    admin = as_user(admin_setup["admin"])

    response = await client.post(
        "/api/settings/pages/sync",
        json={"pages": [
            {"page_key": "user-management", "page_name": "User Management", "route_path": "/dashboard/user-management"},
            {"page_key": "rops", "page_name": "Return of Payments", "route_path": "/dashboard/rops"},
            {"page_key": "orphan", "page_name": "Orphan"},
        ]},
        headers=admin,
    )

    body = response.json()
    assert response.status_code == 200
    assert (body["inserted"], body["updated"], body["skipped"]) == (1, 1, 1)
    assert body["inserted_keys"] == ["user-management"]
    assert body["updated_keys"] == ["rops"]
    assert body["skipped_items"][0]["page"]["page_key"] == "orphan"
    assert body["skipped_items"][0]["reason"] == "Missing required fields"

    pages = await client.get("/api/settings/pages", headers=admin)
    assert "user-management" in {p["page_key"] for p in pages.json()}


@pytest.mark.asyncio
async def test_sync_pages_requires_settings_create(client, admin_setup):
    response = await client.post(
        "/api/settings/pages/sync",
        json={"pages": [{"page_key": "x", "page_name": "X", "route_path": "/dashboard/x"}]},
        headers=as_user(admin_setup["mentor"]),
    )
    assert response.status_code == 403
